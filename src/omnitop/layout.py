"""Column layout and pointer hit-testing."""

import math
from dataclasses import dataclass
from enum import Enum

MIN_COLUMN_PCT = 0.1
MAX_COMBINED_PCT = 0.9  # Leaves at least 10% for the CPU column
RESIZE_STEP = 0.05
_EPSILON = 1e-9


class Region(Enum):
    """Named screen areas used for pointer hit-testing."""

    GPU = "gpu"
    PROCESS = "process"
    CPU = "cpu"
    FOOTER = "footer"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class Geometry:
    """Pixel (cell) geometry derived from a LayoutState."""

    gpu_width: int
    process_width: int
    cpu_width: int
    content_height: int

    @property
    def renderable(self) -> bool:
        return (
            self.content_height > 0
            and self.gpu_width > 0
            and self.process_width > 0
            and self.cpu_width > 0
        )


def _clamp_column(requested: float, other: float) -> float:
    value = max(requested, MIN_COLUMN_PCT)
    if value + other > MAX_COMBINED_PCT + _EPSILON:
        value = MAX_COMBINED_PCT - other
    return round(value, 6)


@dataclass(slots=True)
class LayoutState:
    """
    Column split of the terminal.

    ``col1_pct`` is the GPU column and ``col2_pct`` the process column; the CPU
    column takes whatever remains. Pixel widths are always derived from the
    percentages and the terminal size, never stored.
    """

    col1_pct: float = 0.30
    col2_pct: float = 0.40
    width: int = 0
    height: int = 0

    def __post_init__(self) -> None:
        self.col1_pct = max(self.col1_pct, MIN_COLUMN_PCT)
        self.col2_pct = _clamp_column(self.col2_pct, self.col1_pct)
        if self.col2_pct < MIN_COLUMN_PCT:
            # col1 alone exceeded the combined limit
            self.col1_pct = MAX_COMBINED_PCT - MIN_COLUMN_PCT
            self.col2_pct = MIN_COLUMN_PCT

    def resize(self, dx1: float = 0.0, dx2: float = 0.0) -> None:
        """Adjust the GPU and/or process column, keeping the split invariants."""
        if dx1:
            self.col1_pct = _clamp_column(self.col1_pct + dx1, self.col2_pct)
        if dx2:
            self.col2_pct = _clamp_column(self.col2_pct + dx2, self.col1_pct)

    def set_terminal_size(self, width: int, height: int) -> None:
        self.width = width
        self.height = height

    def geometry(self) -> Geometry:
        width = max(self.width, 0)
        w1 = math.floor(width * self.col1_pct)
        w2 = math.floor(width * self.col2_pct)
        w3 = max(width - w1 - w2, 0)
        return Geometry(w1, w2, w3, max(self.height - 1, 0))

    def hit_test(self, x: int, y: int) -> Region:
        """Return the region containing the cell at ``(x, y)``."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            return Region.NONE
        if y == self.height - 1:
            return Region.FOOTER

        geometry = self.geometry()
        if x < geometry.gpu_width:
            return Region.GPU
        if x < geometry.gpu_width + geometry.process_width:
            return Region.PROCESS
        return Region.CPU
