"""Process list pipeline (filter, sort, materialize) and process control."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import psutil

from omnitop.models import ProcessRecord

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the process table, in cycle order."""

    CPU = "cpu"
    MEMORY = "mem"
    PID = "pid"

    def next(self) -> "SortKey":
        keys = list(SortKey)
        return keys[(keys.index(self) + 1) % len(keys)]


class InputMode(Enum):
    NORMAL = "normal"
    FILTERING = "filtering"


@dataclass(slots=True)
class FilterSortState:
    filter: str = ""
    sort_key: SortKey = SortKey.CPU
    mode: InputMode = InputMode.NORMAL


@dataclass(slots=True, frozen=True)
class ProcessRow:
    """One display row of the process table."""

    pid: str
    user: str
    cpu: str
    mem: str
    command: str


def filter_processes(records: Iterable[ProcessRecord], text: str) -> list[ProcessRecord]:
    """
    Keep records whose command or user contains ``text`` (case-insensitive)
    or whose PID is exactly ``text``. An empty filter keeps everything.
    """
    if not text:
        return list(records)
    needle = text.lower()
    return [
        p
        for p in records
        if needle in p.command.lower() or needle in p.user.lower() or str(p.pid) == needle
    ]


def sort_processes(records: Iterable[ProcessRecord], key: SortKey) -> list[ProcessRecord]:
    """Sort records by ``key``. CPU and memory are descending, PID ascending."""
    if key is SortKey.CPU:
        return sorted(records, key=lambda p: p.cpu_percent, reverse=True)
    if key is SortKey.MEMORY:
        return sorted(records, key=lambda p: p.memory_percent, reverse=True)
    return sorted(records, key=lambda p: p.pid)


def materialize(records: Iterable[ProcessRecord]) -> list[ProcessRow]:
    return [
        ProcessRow(
            pid=str(p.pid),
            user=p.user,
            cpu=f"{p.cpu_percent:.1f}",
            mem=f"{p.memory_percent:.1f}",
            command=p.command,
        )
        for p in records
    ]


def build_rows(
    records: Sequence[ProcessRecord],
    state: FilterSortState,
    max_rows: int,
) -> list[ProcessRow]:
    """Filter, sort and cap the snapshot's processes for display."""
    ordered = sort_processes(filter_processes(records, state.filter), state.sort_key)
    return materialize(ordered[: max(max_rows, 0)])


class ProcessControl(Protocol):
    """OS-facing process control operations."""

    def send_terminate(self, pid: int) -> None: ...

    def get_niceness(self, pid: int) -> int: ...

    def set_niceness(self, pid: int, value: int) -> None: ...


class PsutilProcessControl:
    """ProcessControl backed by psutil."""

    def send_terminate(self, pid: int) -> None:
        psutil.Process(pid).terminate()

    def get_niceness(self, pid: int) -> int:
        return psutil.Process(pid).nice()

    def set_niceness(self, pid: int, value: int) -> None:
        psutil.Process(pid).nice(value)


def terminate(control: ProcessControl, pid: int) -> bool:
    """
    Send a termination signal to ``pid``.

    Failures are logged and never raised; the UI gives no feedback beyond the
    process disappearing (or not) on the next tick.
    """
    try:
        control.send_terminate(pid)
    except (psutil.Error, OSError) as e:
        logger.warning("Failed to kill PID %d: %s", pid, e)
        return False
    logger.info("Sent SIGTERM to PID %d", pid)
    return True


def renice(control: ProcessControl, pid: int, delta: int) -> bool:
    """
    Move the niceness of ``pid`` by ``delta`` (+1 lowers its priority).

    Like terminate(), failures are only logged.
    """
    try:
        current = control.get_niceness(pid)
        control.set_niceness(pid, current + delta)
    except (psutil.Error, OSError) as e:
        logger.warning("Failed to renice PID %d: %s", pid, e)
        return False
    logger.info("Reniced PID %d from %d to %d", pid, current, current + delta)
    return True
