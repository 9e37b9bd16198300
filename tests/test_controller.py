"""Tests for the dashboard state machine."""

import pytest

from omnitop.config import default_config
from omnitop.controller import TOOLTIP_TEXT, DashboardController
from omnitop.layout import Region
from omnitop.models import GPUHealth
from omnitop.processes import InputMode, SortKey


@pytest.fixture
def controller(processes, control, make_snapshot) -> DashboardController:
    ctl = DashboardController(default_config(), process_control=control)
    ctl.resize_terminal(100, 24)
    ctl.apply_snapshot(make_snapshot(processes))
    return ctl


def row_pids(ctl: DashboardController) -> list[str]:
    return [row.pid for row in ctl.rows]


class TestNormalMode:
    """Key handling outside filter mode."""

    def test_initial_state(self, control):
        """Test a fresh controller is running with no rows or selection."""
        ctl = DashboardController(default_config(), process_control=control)
        assert ctl.running
        assert ctl.mode is InputMode.NORMAL
        assert ctl.rows == []
        assert ctl.selected_pid is None

    @pytest.mark.parametrize("key", ["q", "ctrl+c"])
    def test_quit(self, controller, key):
        """Test both quit keys stop the controller."""
        assert controller.handle_key(key)
        assert controller.running is False

    def test_unknown_key_is_not_consumed(self, controller):
        """Test unbound keys are reported as unhandled."""
        assert controller.handle_key("x") is False

    def test_column_resize(self, controller):
        """Test bracket keys resize the GPU and process columns."""
        controller.handle_key("left_square_bracket")
        assert controller.layout.col1_pct == pytest.approx(0.25)
        controller.handle_key("right_curly_bracket")
        assert controller.layout.col2_pct == pytest.approx(0.45)

    def test_raw_bracket_characters(self, controller):
        """Test raw bracket characters are accepted as key names."""
        controller.handle_key("]")
        assert controller.layout.col1_pct == pytest.approx(0.35)

    def test_layout_from_config(self, control):
        """Test configured column widths seed the layout."""
        cfg = default_config()
        cfg.column_widths["gpu"] = 0.2
        ctl = DashboardController(cfg, process_control=control)
        assert ctl.layout.col1_pct == pytest.approx(0.2)

    def test_sort_cycle(self, controller):
        """Test 's' cycles CPU -> Memory -> PID and re-sorts the rows."""
        assert row_pids(controller) == ["1234", "12345", "100", "42"]
        controller.handle_key("s")
        assert controller.filter_sort.sort_key is SortKey.MEMORY
        assert row_pids(controller) == ["12345", "1234", "100", "42"]
        controller.handle_key("s")
        assert row_pids(controller) == ["42", "100", "1234", "12345"]
        controller.handle_key("s")
        assert controller.filter_sort.sort_key is SortKey.CPU


class TestFiltering:
    """Filter mode transitions and live filtering."""

    def test_slash_enters_filter_mode(self, controller):
        """Test '/' switches to filter mode."""
        controller.handle_key("slash")
        assert controller.mode is InputMode.FILTERING

    def test_typing_filters_live(self, controller):
        """Test rows are re-filtered on every keystroke before commit."""
        controller.handle_key("/")
        for ch in "bob":
            controller.handle_key(ch)
        assert controller.pending_filter == "bob"
        assert controller.filter_sort.filter == ""
        assert row_pids(controller) == ["12345"]

    def test_keys_are_text_while_filtering(self, controller):
        """Test command keys are typed as text while filtering."""
        controller.handle_key("slash")
        controller.handle_key("q")
        controller.handle_key("s")
        assert controller.running
        assert controller.filter_sort.sort_key is SortKey.CPU
        assert controller.pending_filter == "qs"

    @pytest.mark.parametrize("key", ["enter", "escape"])
    def test_commit(self, controller, key):
        """Test enter and escape both commit the pending filter."""
        controller.handle_key("slash")
        controller.edit_filter("alice")
        controller.handle_key(key)
        assert controller.mode is InputMode.NORMAL
        assert controller.filter_sort.filter == "alice"
        assert row_pids(controller) == ["1234", "42"]

    def test_backspace(self, controller):
        """Test backspace removes the last character."""
        controller.handle_key("slash")
        controller.edit_filter("root")
        controller.handle_key("backspace")
        assert controller.pending_filter == "roo"

    def test_reopening_starts_from_committed_filter(self, controller):
        """Test re-entering filter mode starts from the committed text."""
        controller.handle_key("slash")
        controller.edit_filter("bash")
        controller.commit_filter()
        controller.handle_key("slash")
        assert controller.pending_filter == "bash"

    def test_edit_ignored_outside_filter_mode(self, controller):
        """Test edit_filter does nothing in normal mode."""
        controller.edit_filter("nothing")
        assert controller.pending_filter == ""
        assert len(controller.rows) == 4

    def test_empty_result_clears_selection(self, controller):
        """Test a filter with no matches leaves nothing selected."""
        controller.handle_key("slash")
        controller.edit_filter("nginx")
        assert controller.rows == []
        assert controller.selected_pid is None


class TestProcessActions:
    """Actions on the selected process."""

    def test_terminate_selected(self, controller, control):
        """Test 'k' terminates the selected PID."""
        controller.select_pid(42)
        controller.handle_key("k")
        assert control.terminated == [42]

    def test_f9_terminates(self, controller, control):
        """Test F9 is an alias for terminate."""
        controller.select_pid(12345)
        controller.handle_key("f9")
        assert control.terminated == [12345]

    def test_renice(self, controller, control):
        """Test F8 raises and F7 lowers the niceness."""
        controller.select_pid(100)
        controller.handle_key("f8")
        controller.handle_key("f8")
        assert control.niceness[100] == 2
        controller.handle_key("f7")
        assert control.niceness[100] == 1

    def test_no_selection_is_a_no_op(self, control):
        """Test actions without a selection do nothing."""
        ctl = DashboardController(default_config(), process_control=control)
        ctl.handle_key("k")
        assert control.terminated == []

    def test_failure_does_not_raise(self, controller, denied_control):
        """Test a denied action leaves the dashboard running."""
        controller.process_control = denied_control
        assert controller.handle_key("k")
        assert controller.running


class TestSnapshots:
    """Applying ticks and keeping the selection."""

    def test_default_selection_is_first_row(self, controller):
        """Test the first row is selected by default."""
        assert controller.selected_pid == 1234

    def test_selection_survives_resort(self, controller):
        """Test the selection follows the PID across a re-sort."""
        controller.select_pid(42)
        controller.handle_key("s")
        assert controller.selected_pid == 42

    def test_selection_falls_back_when_process_exits(self, controller, make_snapshot, make_process):
        """Test the selection moves to the first row when its PID vanishes."""
        controller.select_pid(42)
        controller.apply_snapshot(make_snapshot([make_process(7, cpu=1.0)]))
        assert controller.selected_pid == 7

    def test_failed_fetch_keeps_previous_state(self, controller):
        """Test a None snapshot changes nothing."""
        before = controller.snapshot
        assert controller.apply_snapshot(None) is False
        assert controller.snapshot is before
        assert len(controller.rows) == 4

    def test_alerts_are_recomputed(self, controller, make_snapshot):
        """Test alert flags follow each new snapshot."""
        controller.apply_snapshot(make_snapshot(memory_percent=99.0))
        assert controller.alerts.memory
        controller.apply_snapshot(make_snapshot(memory_percent=10.0))
        assert not controller.alerts.memory

    def test_max_processes_caps_rows(self, processes, control, make_snapshot):
        """Test max_processes caps the table."""
        cfg = default_config()
        cfg.max_processes = 2
        ctl = DashboardController(cfg, process_control=control)
        ctl.apply_snapshot(make_snapshot(processes))
        assert len(ctl.rows) == 2


class TestTooltip:
    """Pointer hover and tooltip text."""

    def test_hover_regions(self, controller):
        """Test the pointer is mapped to each region."""
        controller.pointer_moved(5, 5)
        assert controller.tooltip.region is Region.GPU
        controller.pointer_moved(50, 5)
        assert controller.tooltip.region is Region.PROCESS
        controller.pointer_moved(90, 5)
        assert controller.tooltip.region is Region.CPU
        controller.pointer_moved(50, 23)
        assert controller.tooltip.region is Region.FOOTER
        assert controller.tooltip.visible

    def test_outside_screen_hides(self, controller):
        """Test a pointer outside the screen hides the tooltip."""
        controller.pointer_moved(500, 5)
        assert not controller.tooltip.visible
        assert controller.tooltip_text() == ""

    def test_disabled_tooltips(self, control):
        """Test show_tooltips=False keeps the tooltip hidden."""
        cfg = default_config()
        cfg.show_tooltips = False
        ctl = DashboardController(cfg, process_control=control)
        ctl.resize_terminal(100, 24)
        ctl.pointer_moved(5, 5)
        assert not ctl.tooltip.visible
        assert ctl.tooltip_text() == ""

    def test_region_text(self, controller):
        """Test the CPU region shows its help text."""
        controller.pointer_moved(90, 5)
        assert controller.tooltip_text() == TOOLTIP_TEXT[Region.CPU]

    def test_healthy_gpu_text(self, controller):
        """Test a healthy GPU shows its health and no warnings."""
        controller.pointer_moved(5, 5)
        text = controller.tooltip_text()
        assert text.startswith(TOOLTIP_TEXT[Region.GPU])
        assert "Healthy" in text
        assert "Temperature" not in text

    def test_gpu_warnings(self, controller, make_snapshot):
        """Test a hot, slow-fan, erroring GPU lists every warning."""
        controller.apply_snapshot(
            make_snapshot(gpu_temp=95.0, fan_speed=20.0, error_count=3, health=GPUHealth.DEGRADED)
        )
        controller.pointer_moved(5, 5)
        text = controller.tooltip_text()
        assert "Degraded" in text
        assert "CRITICAL TEMPERATURE" in text
        assert "Low Fan Speed" in text
        assert "Errors: 3" in text

    def test_high_temperature(self, controller, make_snapshot):
        """Test 80-90 degrees gives the high temperature warning."""
        controller.apply_snapshot(make_snapshot(gpu_temp=85.0, fan_speed=50.0))
        controller.pointer_moved(5, 5)
        text = controller.tooltip_text()
        assert "High Temperature" in text
        assert "Low Fan Speed" not in text

    def test_origin_is_kept_on_screen(self, controller):
        """Test the tooltip is shifted left to stay on screen."""
        controller.pointer_moved(90, 5)
        assert controller.tooltip_origin(30) == 70
        controller.pointer_moved(10, 5)
        assert controller.tooltip_origin(30) == 10
        assert controller.tooltip_origin(200) == 0
