"""omnitop - Main Textual application."""

import argparse
import logging
import random
import sys
from datetime import datetime
from pathlib import Path

from rich.cells import cell_len
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.timer import Timer
from textual.widget import Widget
from textual.widgets import DataTable, Input, Static

from omnitop.config import ProfileConfiguration, load_config
from omnitop.controller import DashboardController
from omnitop.layout import Geometry
from omnitop.models import GPUHealth, Snapshot
from omnitop.monitor import MetricsError, MetricsProvider, MockProvider, PsutilProvider
from omnitop.processes import InputMode, ProcessControl
from omnitop.render import (
    format_bytes,
    format_rate,
    format_uptime,
    render_bar,
    render_core_bars,
    render_sparkline,
)
from omnitop.scheduler import SnapshotScheduler
from omnitop.theme import Palette, get_palette

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path.home() / ".cache" / "omnitop" / "omnitop.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
IO_SCALE = 100 * 1024 * 1024  # Bars are full at 100 MB/s
# Border (2) plus horizontal padding (2)
PANEL_CHROME = 4

def _style_alert(widget: Widget, palette: Palette, alert: bool) -> None:
    widget.set_class(alert, "alert")
    widget.styles.border = ("round", palette.alert if alert else palette.border)


class Panel(Static):
    """Bordered column panel that turns red while its alert flag is set."""

    DEFAULT_CSS = """
    Panel {
        height: 100%;
        padding: 0 1;
    }
    """

    def __init__(self, palette: Palette, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.palette = palette

    def on_mount(self) -> None:
        self.set_alert(False)

    def set_alert(self, alert: bool) -> None:
        _style_alert(self, self.palette, alert)


class GPUPanel(Panel):
    """GPU metrics, utilization history and GPU-resident processes."""

    def show(self, snapshot: Snapshot | None, width: int, height: int) -> None:
        self.update(self._render_gpu(snapshot, width - PANEL_CHROME, height - 2))

    def _render_gpu(self, snapshot: Snapshot | None, width: int, height: int) -> Text:
        palette = self.palette
        if snapshot is None:
            return Text("Loading GPU info...", style=palette.label)
        gpu = snapshot.gpu
        if not gpu.available:
            return Text("GPU: N/A", style=palette.label)

        lines = [
            Text(f"GPU: {gpu.name}", style=palette.title),
            render_bar(gpu.utilization, 100, width, f"Util {gpu.utilization:.0f}%", palette),
            render_bar(
                gpu.memory_used,
                gpu.memory_total,
                width,
                f"VRAM {format_bytes(gpu.memory_used)}/{format_bytes(gpu.memory_total)}",
                palette,
            ),
            render_bar(gpu.temperature, 100, width, f"Temp {gpu.temperature:.0f}°C", palette),
            render_bar(gpu.fan_speed, 100, width, f"Fan {gpu.fan_speed:.0f}%", palette),
            render_bar(
                gpu.power_usage,
                gpu.power_limit,
                width,
                f"Pwr {gpu.power_usage / 1000:.0f}W/{gpu.power_limit / 1000:.0f}W",
                palette,
            ),
            Text(f"Clocks {gpu.graphics_clock} / {gpu.memory_clock} MHz", style=palette.label),
        ]

        status = Text(f"Health: {gpu.health.label}")
        if gpu.health is not GPUHealth.HEALTHY:
            status.stylize(palette.alert)
        if gpu.error_count:
            status.append(f"  Errors: {gpu.error_count}", style=palette.alert)
        lines.append(status)

        procs = gpu.processes
        graph_height = max(min(8, height - len(lines) - len(procs) - 4), 1)
        lines.append(Text(""))
        lines.append(render_sparkline(gpu.history, width, graph_height, 100.0, "Utilization", palette))

        if procs:
            lines.append(Text(""))
            lines.append(Text("GPU Processes", style=palette.title))
            for proc in procs:
                lines.append(Text(f"{proc.pid:>7} {proc.name[:16]:<16} {format_bytes(proc.memory_used)}"))

        return Text("\n").join(lines)


class CPUPanel(Panel):
    """CPU summary, per-core bars and a GPU utilization summary."""

    def show(self, snapshot: Snapshot | None, width: int, height: int) -> None:
        self.update(self._render_cpu(snapshot, width - PANEL_CHROME, height - 2))

    def _render_cpu(self, snapshot: Snapshot | None, width: int, height: int) -> Text:
        palette = self.palette
        if snapshot is None:
            return Text("Loading CPU info...", style=palette.label)
        cpu = snapshot.cpu

        header = Text(f"CPU: {cpu.global_usage_percent:.1f}%", style=palette.title)
        uptime = f"Up: {format_uptime(snapshot.uptime_seconds)}"
        gap = width - cell_len(header.plain) - cell_len(uptime)
        header.append(" " * max(gap, 1))
        header.append(uptime, style=palette.label)

        load = cpu.load_avg
        details = f"Load: {load[0]:.2f} {load[1]:.2f} {load[2]:.2f}"
        if cpu.temperature:
            details += f"  Temp: {cpu.temperature:.0f}°C"
        if cpu.frequency_mhz:
            details += f"  {cpu.frequency_mhz:.0f} MHz"

        if snapshot.gpu.available:
            gpu_summary = render_bar(
                snapshot.gpu.utilization, 100, width, f"GPU {snapshot.gpu.utilization:.0f}%", palette
            )
        else:
            gpu_summary = Text("GPU: N/A", style=palette.label)

        # Header, load, spacers and the GPU summary take eight rows
        core_rows = max(height - 8, 5)
        return Text("\n").join(
            [
                header,
                Text(details, style=palette.label),
                Text(""),
                render_core_bars(cpu.per_core_usage, width, core_rows, palette),
                Text(""),
                Text("GPU Summary", style=palette.title),
                gpu_summary,
            ]
        )


class ProcessPanel(Vertical):
    """Process table with filter input and memory, swap, network and disk bars."""

    DEFAULT_CSS = """
    ProcessPanel {
        height: 100%;
        padding: 0 1;
    }

    #process-table {
        height: 1fr;
    }

    #process-filter {
        display: none;
        height: 1;
        border: none;
        padding: 0;
    }

    #process-stats {
        height: auto;
    }
    """

    def __init__(self, palette: Palette, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.palette = palette

    def compose(self) -> ComposeResult:
        yield Static(id="process-header")
        # Disabled while hidden so it never takes focus from the table
        yield Input(placeholder="Filter...", max_length=30, id="process-filter", disabled=True)
        yield DataTable(id="process-table", cursor_type="row")
        yield Static(id="process-stats")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.add_column("PID", key="pid", width=6)
        table.add_column("User", key="user", width=10)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("Mem%", key="mem", width=6)
        table.add_column("Command", key="command")
        self.set_alert(False)

    def set_alert(self, alert: bool) -> None:
        _style_alert(self, self.palette, alert)

    def show_header(self, controller: DashboardController) -> None:
        state = controller.filter_sort
        title = "Processes"
        if state.mode is InputMode.NORMAL and state.filter:
            title = f"Filter: {state.filter}"
        header = Text(title, style=self.palette.title)
        header.append(f"  [{state.sort_key.name}]", style=self.palette.label)
        self.query_one("#process-header", Static).update(header)

    def show_rows(self, controller: DashboardController) -> None:
        """Replace the table contents and keep the cursor on the selected PID."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        selected_index = 0
        for index, row in enumerate(controller.rows):
            table.add_row(row.pid, row.user[:10], row.cpu, row.mem, row.command, key=row.pid)
            if controller.selected_pid is not None and row.pid == str(controller.selected_pid):
                selected_index = index
        if controller.rows:
            table.move_cursor(row=selected_index)

    def show_stats(self, snapshot: Snapshot | None, width: int, alerts_memory: bool, alerts_disk: bool) -> None:
        palette = self.palette
        stats = self.query_one("#process-stats", Static)
        if snapshot is None:
            stats.update("")
            return

        bar_width = max(width - PANEL_CHROME, 5)
        half_width = max(width // 2 - 3, 5)
        memory = snapshot.memory
        mem_label = f"Mem {memory.used_percent:.1f}%"
        if alerts_memory:
            mem_label += " !"
        disk_label = f"Disk {snapshot.disk.usage_percent:.0f}%"
        if alerts_disk:
            disk_label += " !"

        net_row = render_bar(
            snapshot.net.download_speed, IO_SCALE, half_width, f"↓ {format_rate(snapshot.net.download_speed)}", palette
        )
        net_row.append_text(
            render_bar(
                snapshot.net.upload_speed, IO_SCALE, half_width, f"↑ {format_rate(snapshot.net.upload_speed)}", palette
            )
        )
        disk_row = render_bar(
            snapshot.disk.read_speed, IO_SCALE, half_width, f"R {format_rate(snapshot.disk.read_speed)}", palette
        )
        disk_row.append_text(
            render_bar(
                snapshot.disk.write_speed, IO_SCALE, half_width, f"W {format_rate(snapshot.disk.write_speed)}", palette
            )
        )

        stats.update(
            Text("\n").join(
                [
                    render_bar(memory.used_percent, 100, bar_width, mem_label, palette),
                    render_bar(memory.swap_percent, 100, bar_width, f"Swap {memory.swap_percent:.1f}%", palette),
                    render_bar(snapshot.disk.usage_percent, 100, bar_width, disk_label, palette),
                    net_row,
                    disk_row,
                ]
            )
        )


class FooterBar(Static):
    """Bottom row with hotkeys and the current time."""

    DEFAULT_CSS = """
    FooterBar {
        dock: bottom;
        height: 1;
    }
    """

    HOTKEYS = "q Quit  [ ] GPU  { } Proc  / Filter  s Sort  k Kill  F7/F8 Nice"

    def show(self, palette: Palette, width: int) -> None:
        clock = datetime.now().strftime("%H:%M:%S")
        text = Text(self.HOTKEYS, style=palette.label)
        text.append(" " * max(width - cell_len(self.HOTKEYS) - len(clock), 1))
        text.append(clock, style=palette.text)
        self.update(text)


class Tooltip(Static):
    """Help overlay that follows the pointer."""

    DEFAULT_CSS = """
    Tooltip {
        layer: overlay;
        dock: top;
        display: none;
        width: auto;
        height: auto;
        padding: 0 1;
    }
    """


class OmnitopApp(App):
    """Main omnitop application."""

    TITLE = "omnitop"
    SUB_TITLE = "System Telemetry Dashboard"
    AUTO_FOCUS = "#process-table"

    CSS = """
    Screen {
        layers: base overlay;
    }

    #columns {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
        Binding("left_square_bracket", "engine_key('left_square_bracket')", "Shrink GPU", show=False),
        Binding("right_square_bracket", "engine_key('right_square_bracket')", "Grow GPU", show=False),
        Binding("left_curly_bracket", "engine_key('left_curly_bracket')", "Shrink Proc", show=False),
        Binding("right_curly_bracket", "engine_key('right_curly_bracket')", "Grow Proc", show=False),
        Binding("s", "engine_key('s')", "Sort"),
        Binding("slash", "engine_key('slash')", "Filter"),
        Binding("k", "engine_key('k')", "Kill"),
        Binding("f9", "engine_key('f9')", "Kill", show=False),
        Binding("f8", "engine_key('f8')", "Nice+", show=False),
        Binding("f7", "engine_key('f7')", "Nice-", show=False),
        Binding("escape", "commit_filter", "Done", show=False, priority=True),
    ]

    def __init__(
        self,
        provider: MetricsProvider,
        config: ProfileConfiguration | None = None,
        process_control: ProcessControl | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the OmnitopApp.

        Args:
            provider: Initialized metrics provider.
            config: Profile configuration; defaults when omitted.
            process_control: Process-control backend; psutil when omitted.
            rng: Jitter source for the refresh scheduler.
        """
        super().__init__()
        self._config = config or ProfileConfiguration()
        self._provider = provider
        self._palette = get_palette(self._config.theme)
        self._controller = DashboardController(self._config, process_control)
        self._scheduler = SnapshotScheduler(provider, interval_ms=self._config.refresh_interval, rng=rng)
        self._tick_timer: Timer | None = None

    @property
    def controller(self) -> DashboardController:
        return self._controller

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        with Horizontal(id="columns"):
            yield GPUPanel(self._palette, id="gpu-panel")
            yield ProcessPanel(self._palette, id="process-panel")
            yield CPUPanel(self._palette, id="cpu-panel")
        yield FooterBar(id="footer")
        yield Tooltip(id="tooltip")

    def on_mount(self) -> None:
        """Size the layout and run the first tick."""
        self.screen.styles.background = self._palette.background
        self.screen.styles.color = self._palette.text
        self._controller.resize_terminal(self.size.width, self.size.height)
        # Children add their table columns in their own mount handlers
        self.call_after_refresh(self._on_tick)

    def _schedule_tick(self) -> None:
        self._tick_timer = self.set_timer(self._scheduler.next_delay(), self._on_tick)

    def _on_tick(self) -> None:
        """Fetch a snapshot and redraw; the next tick is always armed."""
        try:
            if self._controller.apply_snapshot(self._scheduler.tick()):
                self._refresh_view(rows=True)
            else:
                self._refresh_view(rows=False)
        finally:
            self._schedule_tick()

    def on_resize(self, event: events.Resize) -> None:
        self._controller.resize_terminal(event.size.width, event.size.height)
        self._refresh_view(rows=False)

    async def on_event(self, event: events.Event) -> None:
        if isinstance(event, events.MouseMove):
            self._controller.pointer_moved(event.screen_x, event.screen_y)
            self._refresh_tooltip()
        await super().on_event(event)

    # Rendering

    def _refresh_view(self, rows: bool) -> None:
        """Push geometry, panel contents and alert styling into the widgets."""
        controller = self._controller
        geometry = controller.layout.geometry()
        try:
            columns = self.query_one("#columns", Horizontal)
        except NoMatches:
            # Resize events can arrive before the layout is composed
            return
        columns.display = geometry.renderable
        if not geometry.renderable:
            return

        gpu_panel = self.query_one(GPUPanel)
        process_panel = self.query_one(ProcessPanel)
        cpu_panel = self.query_one(CPUPanel)
        self._apply_geometry(geometry, gpu_panel, process_panel, cpu_panel)

        snapshot = controller.snapshot
        alerts = controller.alerts
        gpu_panel.set_alert(alerts.gpu)
        cpu_panel.set_alert(alerts.cpu)
        process_panel.set_alert(alerts.memory or alerts.disk)

        gpu_panel.show(snapshot, geometry.gpu_width, geometry.content_height)
        cpu_panel.show(snapshot, geometry.cpu_width, geometry.content_height)
        process_panel.show_header(controller)
        process_panel.show_stats(snapshot, geometry.process_width, alerts.memory, alerts.disk)
        if rows:
            process_panel.show_rows(controller)
        self.query_one(FooterBar).show(self._palette, controller.layout.width)

    def _apply_geometry(self, geometry: Geometry, gpu: GPUPanel, process: ProcessPanel, cpu: CPUPanel) -> None:
        self.query_one("#columns", Horizontal).styles.height = geometry.content_height
        gpu.styles.width = geometry.gpu_width
        process.styles.width = geometry.process_width
        cpu.styles.width = geometry.cpu_width

    def _refresh_tooltip(self) -> None:
        tooltip = self.query_one(Tooltip)
        text = self._controller.tooltip_text()
        if not text:
            tooltip.display = False
            return

        layout = self._controller.layout
        lines = text.splitlines()
        # Text plus border and padding, capped to the terminal
        width = min(max(cell_len(line) for line in lines) + 4, max(layout.width, 1))
        height = len(lines) + 2
        y = self._controller.tooltip.y + 1
        if y + height > layout.height:
            y = max(self._controller.tooltip.y - height, 0)

        tooltip.update(text)
        tooltip.styles.width = width
        tooltip.styles.border = ("round", self._palette.text)
        tooltip.styles.background = self._palette.border
        tooltip.styles.offset = (self._controller.tooltip_origin(width), y)
        tooltip.display = True

    # Input

    def action_engine_key(self, key: str) -> None:
        """Route a bound key through the dashboard controller."""
        controller = self._controller
        was_filtering = controller.mode is InputMode.FILTERING
        if not controller.handle_key(key):
            return
        if controller.mode is InputMode.FILTERING and not was_filtering:
            self._open_filter()
        self._refresh_view(rows=True)

    def action_commit_filter(self) -> None:
        if self._controller.mode is not InputMode.FILTERING:
            return
        self._controller.handle_key("escape")
        self._close_filter()

    def _open_filter(self) -> None:
        field = self.query_one("#process-filter", Input)
        field.value = self._controller.pending_filter
        field.display = True
        field.disabled = False
        field.focus()

    def _close_filter(self) -> None:
        field = self.query_one("#process-filter", Input)
        field.display = False
        field.disabled = True
        self.query_one("#process-table", DataTable).focus()
        self._refresh_view(rows=True)

    def on_input_changed(self, event: Input.Changed) -> None:
        if self._controller.mode is InputMode.FILTERING:
            self._controller.edit_filter(event.value)
            self._refresh_view(rows=True)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if self._controller.mode is InputMode.FILTERING:
            self._controller.handle_key("enter")
            self._close_filter()

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value is not None:
            self._controller.select_pid(int(event.row_key.value))

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._controller.handle_key("q")
        if self._tick_timer is not None:
            self._tick_timer.stop()
        self._provider.shutdown()
        self.exit()


def configure_logging(path: Path | None, level: str = "INFO") -> None:
    """Send log records to ``path``; the terminal belongs to the UI."""
    root = logging.getLogger()
    root.setLevel(level)
    if path is None:
        root.addHandler(logging.NullHandler())
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def main(argv: list[str] | None = None) -> None:
    """Entry point for omnitop application."""
    parser = argparse.ArgumentParser(prog="omnitop", description="Terminal system telemetry dashboard.")
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: ~/.config/omnitop/config.json)")
    parser.add_argument("--mock", action="store_true", help="Show synthetic metrics instead of this host's")
    parser.add_argument("--log-file", type=Path, default=DEFAULT_LOG_PATH, help="Where to write the diagnostic log")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Minimum level written to the log",
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_file, args.log_level)
    config = load_config(args.config)

    provider: MetricsProvider
    if args.mock:
        provider = MockProvider(history_length=config.gpu_history_length)
    else:
        provider = PsutilProvider(history_length=config.gpu_history_length)
    try:
        provider.init()
    except MetricsError as e:
        print(f"omnitop: cannot read system metrics: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    logger.info("omnitop starting (mock=%s)", args.mock)
    app = OmnitopApp(provider, config)
    app.run()


if __name__ == "__main__":
    main()
