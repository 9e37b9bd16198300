"""Colour palettes for omnitop."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Palette:
    background: str
    text: str
    border: str
    graph: str
    alert: str

    @property
    def bar(self) -> str:
        return self.graph

    @property
    def alert_bar(self) -> str:
        return self.alert

    @property
    def label(self) -> str:
        return self.border

    @property
    def title(self) -> str:
        return f"bold {self.text}"


# "Wrath of the Lich King" palette
LICH_KING = Palette(
    background="#0A001F",  # Midnight black
    text="#81A1C1",  # Ice blue
    border="#4C566A",  # Steel gray
    graph="#8FBCBB",  # Pale blue
    alert="#C41E3A",  # Blood crimson
)

PALETTES: dict[str, Palette] = {
    "lich-king": LICH_KING,
}


def get_palette(name: str) -> Palette:
    """Return the named palette, falling back to lich-king."""
    try:
        return PALETTES[name]
    except KeyError:
        logger.warning("unknown theme %r, using lich-king", name)
        return LICH_KING
