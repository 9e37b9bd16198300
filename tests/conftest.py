"""Shared fixtures and test doubles."""

from collections.abc import Iterable

import psutil
import pytest

from omnitop.models import (
    CPUStats,
    DiskStats,
    GPUStats,
    MemoryStats,
    ProcessRecord,
    Snapshot,
)
from omnitop.monitor import MetricsError


def build_process(
    pid: int,
    user: str = "user",
    command: str = "proc",
    cpu: float = 0.0,
    mem: float = 0.0,
) -> ProcessRecord:
    return ProcessRecord(
        pid=pid,
        user=user,
        command=command,
        state="S",
        cpu_percent=cpu,
        memory_percent=mem,
        threads=1,
        priority=0,
    )


def build_snapshot(
    processes: Iterable[ProcessRecord] = (),
    cpu_usage: float = 10.0,
    cpu_temp: float = 40.0,
    memory_percent: float = 50.0,
    gpu_util: float = 20.0,
    gpu_temp: float = 50.0,
    disk_percent: float = 40.0,
    **gpu_fields,
) -> Snapshot:
    return Snapshot(
        uptime_seconds=3600.0,
        cpu=CPUStats(
            global_usage_percent=cpu_usage,
            per_core_usage=(cpu_usage, cpu_usage),
            temperature=cpu_temp,
            load_avg=(1.0, 0.5, 0.25),
        ),
        memory=MemoryStats(
            total=16 * 1024**3,
            used=int(16 * 1024**3 * memory_percent / 100),
            used_percent=memory_percent,
        ),
        gpu=GPUStats(
            available=True,
            name="Test GPU",
            utilization=gpu_util,
            temperature=gpu_temp,
            memory_total=8 * 1024**3,
            history=(10.0, 20.0, 30.0),
            **gpu_fields,
        ),
        disk=DiskStats(usage_percent=disk_percent),
        processes=tuple(processes),
    )


class ScriptedProvider:
    """Provider returning a fixed script of snapshots; None entries fail."""

    def __init__(self, script: Iterable[Snapshot | None]) -> None:
        self._script = list(script)
        self._index = 0
        self.calls = 0
        self.initialized = False
        self.shut_down = False

    def init(self) -> None:
        self.initialized = True

    def get_snapshot(self) -> Snapshot:
        self.calls += 1
        if not self._script:
            raise MetricsError("empty script")
        item = self._script[min(self._index, len(self._script) - 1)]
        self._index += 1
        if item is None:
            raise MetricsError("scripted failure")
        return item

    def shutdown(self) -> None:
        self.shut_down = True


class RecordingControl:
    """ProcessControl double that records calls and can be told to fail."""

    def __init__(self, niceness: int = 0, error: Exception | None = None) -> None:
        self.niceness: dict[int, int] = {}
        self.default_niceness = niceness
        self.error = error
        self.terminated: list[int] = []

    def send_terminate(self, pid: int) -> None:
        if self.error:
            raise self.error
        self.terminated.append(pid)

    def get_niceness(self, pid: int) -> int:
        if self.error:
            raise self.error
        return self.niceness.get(pid, self.default_niceness)

    def set_niceness(self, pid: int, value: int) -> None:
        if self.error:
            raise self.error
        self.niceness[pid] = value


@pytest.fixture
def make_process():
    """Factory for ProcessRecord with sensible defaults."""
    return build_process


@pytest.fixture
def make_snapshot():
    """Factory for a Snapshot with an available GPU and quiet metrics."""
    return build_snapshot


@pytest.fixture
def scripted_provider():
    """Factory for an initialized provider that plays back a script."""

    def factory(script: Iterable[Snapshot | None]) -> ScriptedProvider:
        provider = ScriptedProvider(script)
        provider.init()
        return provider

    return factory


@pytest.fixture
def make_control():
    """Factory for a recording ProcessControl."""
    return RecordingControl


@pytest.fixture
def processes() -> list[ProcessRecord]:
    return [
        build_process(100, user="root", command="systemd", cpu=1.0, mem=0.5),
        build_process(1234, user="alice", command="python", cpu=50.0, mem=10.0),
        build_process(12345, user="bob", command="chrome", cpu=20.0, mem=30.0),
        build_process(42, user="alice", command="bash", cpu=0.0, mem=0.1),
    ]


@pytest.fixture
def control() -> RecordingControl:
    return RecordingControl()


@pytest.fixture
def denied_control() -> RecordingControl:
    return RecordingControl(error=psutil.AccessDenied(pid=1))
