"""Data models for omnitop."""

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class GPUHealth(Enum):
    """Health classification reported for the GPU."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Display name, e.g. "Degraded"."""
        return self.value.capitalize()


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a process for one tick."""

    pid: int
    user: str
    command: str
    state: str  # 'R', 'S', 'Z', 'D', etc.
    cpu_percent: float  # 0.0 - 100.0 * core_count
    memory_percent: float
    threads: int
    priority: int
    uses_gpu: bool = False


@dataclass(slots=True, frozen=True)
class GPUProcess:
    """A process holding GPU memory."""

    pid: int
    name: str
    memory_used: int  # Bytes


@dataclass(slots=True, frozen=True)
class CPUStats:
    global_usage_percent: float = 0.0
    per_core_usage: tuple[float, ...] = ()
    per_core_temp: tuple[float, ...] = ()
    temperature: float = 0.0  # Package temperature, Celsius
    load_avg: tuple[float, float, float] = (0.0, 0.0, 0.0)
    frequency_mhz: float = 0.0


@dataclass(slots=True, frozen=True)
class MemoryStats:
    total: int = 0
    used: int = 0
    used_percent: float = 0.0
    swap_total: int = 0
    swap_used: int = 0
    swap_percent: float = 0.0


@dataclass(slots=True, frozen=True)
class GPUStats:
    """GPU metrics; every numeric field is zero when ``available`` is False."""

    available: bool = False
    name: str = ""
    utilization: float = 0.0  # Percent
    memory_used: int = 0  # Bytes
    memory_total: int = 0  # Bytes
    memory_util: float = 0.0  # Percent
    temperature: float = 0.0  # Celsius
    fan_speed: float = 0.0  # Percent
    graphics_clock: int = 0  # MHz
    memory_clock: int = 0  # MHz
    power_usage: int = 0  # Milliwatts
    power_limit: int = 0  # Milliwatts
    health: GPUHealth = GPUHealth.HEALTHY
    error_count: int = 0
    history: tuple[float, ...] = ()
    processes: tuple[GPUProcess, ...] = ()


@dataclass(slots=True, frozen=True)
class DiskStats:
    read_speed: float = 0.0  # Bytes per second
    write_speed: float = 0.0  # Bytes per second
    usage_percent: float = 0.0


@dataclass(slots=True, frozen=True)
class NetStats:
    download_speed: float = 0.0  # Bytes per second
    upload_speed: float = 0.0  # Bytes per second


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    Point-in-time capture of every monitored metric.

    Snapshots are handed to the UI as owned values: providers build a fresh
    one per tick and nothing downstream mutates it.
    """

    timestamp: datetime = field(default_factory=datetime.now)
    uptime_seconds: float = 0.0
    cpu: CPUStats = field(default_factory=CPUStats)
    memory: MemoryStats = field(default_factory=MemoryStats)
    gpu: GPUStats = field(default_factory=GPUStats)
    disk: DiskStats = field(default_factory=DiskStats)
    net: NetStats = field(default_factory=NetStats)
    processes: tuple[ProcessRecord, ...] = ()


class HistorySeries:
    """Fixed-capacity ring buffer of recent samples."""

    __slots__ = ("_samples",)

    def __init__(self, capacity: int = 100, initial: Iterable[float] = ()) -> None:
        if capacity < 1:
            raise ValueError(f"history capacity must be at least 1, got {capacity}")
        self._samples: deque[float] = deque(initial, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def push(self, value: float) -> None:
        """Append a sample, dropping the oldest one when full."""
        self._samples.append(float(value))

    def values(self) -> tuple[float, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)
