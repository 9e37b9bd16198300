"""Dashboard state machine.

The controller holds every piece of engine state (layout, filter/sort, tooltip,
current snapshot, alert flags, process rows, selection) and is driven one event
at a time by the UI loop. It never touches widgets, which keeps it testable
without a terminal.
"""

import logging
from dataclasses import dataclass

from omnitop.alerts import AlertFlags, evaluate_alerts
from omnitop.config import ProfileConfiguration
from omnitop.layout import RESIZE_STEP, LayoutState, Region
from omnitop.models import GPUHealth, Snapshot
from omnitop.processes import (
    FilterSortState,
    InputMode,
    ProcessControl,
    ProcessRow,
    PsutilProcessControl,
    build_rows,
    renice,
    terminate,
)

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "ctrl+c"})
RESIZE_KEYS: dict[str, tuple[float, float]] = {
    "left_square_bracket": (-RESIZE_STEP, 0.0),
    "right_square_bracket": (RESIZE_STEP, 0.0),
    "left_curly_bracket": (0.0, -RESIZE_STEP),
    "right_curly_bracket": (0.0, RESIZE_STEP),
}
TERMINATE_KEYS = frozenset({"k", "f9"})
RENICE_UP_KEY = "f8"  # Higher niceness, lower priority
RENICE_DOWN_KEY = "f7"
SORT_KEY = "s"
FILTER_KEY = "slash"
COMMIT_KEYS = frozenset({"enter", "escape"})

# Raw characters some terminals report instead of key names
_KEY_ALIASES = {
    "[": "left_square_bracket",
    "]": "right_square_bracket",
    "{": "left_curly_bracket",
    "}": "right_curly_bracket",
    "/": "slash",
}

TOOLTIP_TEXT = {
    Region.GPU: (
        "GPU Panel: Shows GPU utilization, memory, temperature, and health status."
    ),
    Region.PROCESS: (
        "Process List: Shows running processes. Use Up/Down arrows to navigate, "
        "/ to filter, s to change the sort order."
    ),
    Region.CPU: "CPU Panel: Shows CPU utilization, load, uptime, and per-core usage.",
    Region.FOOTER: (
        "Footer: Shows hotkeys and current time. "
        "[ and ] resize GPU column, { and } resize Process column."
    ),
}

_HEALTH_ICONS = {
    GPUHealth.HEALTHY: "✅",
    GPUHealth.DEGRADED: "⚠️",
    GPUHealth.FAILED: "🔴",
}


@dataclass(slots=True)
class TooltipState:
    x: int = 0
    y: int = 0
    region: Region = Region.NONE
    visible: bool = False


class DashboardController:
    """Root state machine of the dashboard."""

    def __init__(
        self,
        config: ProfileConfiguration,
        process_control: ProcessControl | None = None,
    ) -> None:
        self.config = config
        self.process_control = process_control or PsutilProcessControl()
        self.layout = LayoutState(
            col1_pct=config.column_widths.get("gpu", 0.30),
            col2_pct=config.column_widths.get("process", 0.40),
        )
        self.filter_sort = FilterSortState()
        self.pending_filter = ""
        self.tooltip = TooltipState()
        self.snapshot: Snapshot | None = None
        self.alerts = AlertFlags()
        self.rows: list[ProcessRow] = []
        self.selected_pid: int | None = None
        self.running = True

    @property
    def mode(self) -> InputMode:
        return self.filter_sort.mode

    @property
    def active_filter(self) -> str:
        """The filter applied to the rows, including uncommitted edits."""
        if self.mode is InputMode.FILTERING:
            return self.pending_filter
        return self.filter_sort.filter

    # Input

    def handle_key(self, key: str) -> bool:
        """Dispatch one key press. Returns True if the key was consumed."""
        key = _KEY_ALIASES.get(key, key)
        if self.mode is InputMode.FILTERING:
            return self._handle_filter_key(key)

        if key in QUIT_KEYS:
            self.running = False
        elif key in RESIZE_KEYS:
            self.layout.resize(*RESIZE_KEYS[key])
        elif key == SORT_KEY:
            self.filter_sort.sort_key = self.filter_sort.sort_key.next()
            self._refresh_rows()
        elif key == FILTER_KEY:
            self.filter_sort.mode = InputMode.FILTERING
            self.pending_filter = self.filter_sort.filter
        elif key in TERMINATE_KEYS:
            if self.selected_pid is not None:
                terminate(self.process_control, self.selected_pid)
        elif key == RENICE_UP_KEY:
            if self.selected_pid is not None:
                renice(self.process_control, self.selected_pid, 1)
        elif key == RENICE_DOWN_KEY:
            if self.selected_pid is not None:
                renice(self.process_control, self.selected_pid, -1)
        else:
            return False
        return True

    def _handle_filter_key(self, key: str) -> bool:
        if key in COMMIT_KEYS:
            self.commit_filter()
        elif key == "backspace":
            self.edit_filter(self.pending_filter[:-1])
        elif key == "space":
            self.edit_filter(self.pending_filter + " ")
        elif key == "slash":
            self.edit_filter(self.pending_filter + "/")
        elif len(key) == 1 and key.isprintable():
            self.edit_filter(self.pending_filter + key)
        else:
            return False
        return True

    def edit_filter(self, text: str) -> None:
        """Replace the pending filter and re-filter the rows immediately."""
        if self.mode is not InputMode.FILTERING:
            return
        self.pending_filter = text
        self._refresh_rows()

    def commit_filter(self) -> None:
        self.filter_sort.filter = self.pending_filter
        self.filter_sort.mode = InputMode.NORMAL
        logger.debug("process filter set to %r", self.filter_sort.filter)
        self._refresh_rows()

    def pointer_moved(self, x: int, y: int) -> None:
        self.tooltip.x = x
        self.tooltip.y = y
        if self.config.show_tooltips:
            region = self.layout.hit_test(x, y)
            self.tooltip.region = region
            self.tooltip.visible = region is not Region.NONE
        else:
            self.tooltip.region = Region.NONE
            self.tooltip.visible = False

    def resize_terminal(self, width: int, height: int) -> None:
        self.layout.set_terminal_size(width, height)

    def select_pid(self, pid: int | None) -> None:
        self.selected_pid = pid

    # Ticks

    def apply_snapshot(self, snapshot: Snapshot | None) -> bool:
        """
        Install the snapshot of a new tick.

        A None snapshot (failed fetch) leaves the previous one on screen.
        Returns True if the state changed.
        """
        if snapshot is None:
            return False
        self.snapshot = snapshot
        self.alerts = evaluate_alerts(snapshot, self.config.alert_thresholds)
        self._refresh_rows()
        return True

    def _refresh_rows(self) -> None:
        processes = self.snapshot.processes if self.snapshot else ()
        state = FilterSortState(self.active_filter, self.filter_sort.sort_key, self.mode)
        self.rows = build_rows(processes, state, self.config.max_processes)
        pids = [int(row.pid) for row in self.rows]
        if self.selected_pid not in pids:
            self.selected_pid = pids[0] if pids else None

    # Tooltip

    def tooltip_text(self) -> str:
        """Help text for the hovered region, empty when the tooltip is hidden."""
        if not self.tooltip.visible:
            return ""
        base = TOOLTIP_TEXT.get(self.tooltip.region, "")
        if self.tooltip.region is not Region.GPU or self.snapshot is None:
            return base

        gpu = self.snapshot.gpu
        if not gpu.available:
            return base

        details = f"Health: {_HEALTH_ICONS[gpu.health]} {gpu.health.label}"
        if gpu.temperature > 90:
            details += " | 🔥 CRITICAL TEMPERATURE!"
        elif gpu.temperature > 80:
            details += " | ⚠️ High Temperature"
        if gpu.temperature > 80 and gpu.fan_speed < 30:
            details += " | 💨 Low Fan Speed"
        if gpu.error_count > 0:
            details += f" | Errors: {gpu.error_count}"
        return f"{base}\n\n{details}"

    def tooltip_origin(self, tooltip_width: int) -> int:
        """Column of the tooltip's left edge, kept on screen."""
        x = self.tooltip.x
        if x + tooltip_width > self.layout.width:
            x = self.layout.width - tooltip_width
        return max(x, 0)
