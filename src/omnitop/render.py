"""Text rendering primitives: progress bars, sparklines and value formatting.

Everything here is a pure function of its arguments so the output can be
asserted on directly.
"""

import math
from collections.abc import Sequence

from rich.cells import cell_len
from rich.text import Text

from omnitop.theme import LICH_KING, Palette

BAR_FILL = "█"
BAR_EMPTY = "░"
# Index 0 is blank, index 8 is a full cell.
SPARK_LEVELS = " ▁▂▃▄▅▆▇█"
MIN_BAR_WIDTH = 10
ALERT_RATIO = 0.8
CORE_COLUMN_WIDTH = 20


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size = size / 1024
    return f"{size:.1f} PB"


def format_rate(bytes_per_second: float) -> str:
    return f"{format_bytes(bytes_per_second)}/s"


def format_uptime(seconds: float) -> str:
    total = max(int(seconds), 0)
    days = total // 86400
    hours = (total % 86400) // 3600
    minutes = (total % 3600) // 60
    return f"{days}d {hours:02d}h {minutes:02d}m"


def bar_fill_count(value: float, maximum: float, bar_width: int) -> int:
    """Number of filled cells for ``value`` out of ``maximum``."""
    if bar_width <= 0:
        return 0
    proportion = value / maximum if maximum > 0 else 0.0
    proportion = min(max(proportion, 0.0), 1.0)
    return min(max(round_half_up(proportion * bar_width), 0), bar_width)


def is_alert_value(value: float, maximum: float) -> bool:
    return maximum > 0 and value > ALERT_RATIO * maximum


def render_bar(
    value: float,
    maximum: float,
    width: int,
    label: str,
    palette: Palette = LICH_KING,
) -> Text:
    """
    Render ``label`` followed by a horizontal bar, ``width`` cells in total.

    Narrow widths degrade to the bare label. The bar switches to the alert
    colour once ``value`` exceeds 80% of ``maximum``.
    """
    if width < MIN_BAR_WIDTH:
        return Text(label)

    # One separator cell after the label, one after the bar.
    bar_width = max(width - cell_len(label) - 2, 0)
    filled = bar_fill_count(value, maximum, bar_width)
    style = palette.alert_bar if is_alert_value(value, maximum) else palette.bar

    text = Text(label)
    text.append(" ")
    text.append(BAR_FILL * filled + BAR_EMPTY * (bar_width - filled), style=style)
    text.append(" ")
    return text


def sparkline_grid(
    series: Sequence[float],
    width: int,
    height: int,
    max_val: float = 0.0,
) -> list[str]:
    """
    Quantize the tail of ``series`` into a ``height`` x ``width`` glyph grid.

    Each column stacks full blocks from the bottom row up, topped by one
    partial block picked from the nine levels in SPARK_LEVELS. Series shorter
    than ``width`` are right-aligned. A ``max_val`` of zero or less means the
    largest visible sample, or 1.0 if none is positive.
    """
    if width <= 0 or height <= 0:
        return []

    samples = list(series)[-width:]
    if max_val <= 0:
        max_val = max(samples, default=0.0)
        if max_val <= 0:
            max_val = 1.0

    top = len(SPARK_LEVELS) - 1
    rows = [[" "] * width for _ in range(height)]
    offset = width - len(samples)
    for i, value in enumerate(samples):
        level = min(max(value / max_val, 0.0), 1.0) * height
        full = int(level)
        partial = round_half_up((level - full) * top)
        col = offset + i
        for b in range(full):
            rows[height - 1 - b][col] = SPARK_LEVELS[top]
        if full < height and partial > 0:
            rows[height - 1 - full][col] = SPARK_LEVELS[partial]

    return ["".join(row) for row in rows]


def render_sparkline(
    series: Sequence[float],
    width: int,
    height: int,
    max_val: float = 0.0,
    label: str | None = None,
    palette: Palette = LICH_KING,
) -> Text:
    """Styled sparkline, optionally preceded by a label line."""
    text = Text()
    if label is not None:
        text.append(label, style=palette.label)
        text.append("\n")
    text.append("\n".join(sparkline_grid(series, width, height, max_val)), style=palette.graph)
    return text


def _render_core_bar(value: float, width: int, label: str, palette: Palette) -> Text:
    # "12 [|||||     ]"
    bar_len = width - cell_len(label) - 3
    if bar_len < 5:
        return Text(f"{label} {value:.0f}%")
    filled = bar_fill_count(value, 100.0, bar_len)
    style = palette.alert_bar if is_alert_value(value, 100.0) else palette.bar
    text = Text(f"{label} [")
    text.append("|" * filled + " " * (bar_len - filled), style=style)
    text.append("]")
    return text


def render_core_bars(
    usage: Sequence[float],
    width: int,
    height: int,
    palette: Palette = LICH_KING,
) -> Text:
    """Lay out one compact bar per core in as many columns as fit."""
    if not usage:
        return Text("No CPU Data", style=palette.label)

    num_cols = max(width // CORE_COLUMN_WIDTH, 1)
    bar_width = max(width // num_cols - 2, 5)
    rows = math.ceil(len(usage) / num_cols)

    lines: list[Text] = []
    for r in range(rows):
        if r >= height:
            lines.append(Text("...", style=palette.label))
            break
        line = Text()
        for c in range(num_cols):
            idx = r * num_cols + c
            if idx >= len(usage):
                break
            if c:
                line.append("  ")
            line.append_text(_render_core_bar(usage[idx], bar_width, f"{idx:2d}", palette))
        lines.append(line)
    return Text("\n").join(lines)
