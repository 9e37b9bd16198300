"""Metrics providers for omnitop."""

import logging
import random
import subprocess
import time
from datetime import datetime
from typing import Protocol

import psutil

from omnitop.models import (
    CPUStats,
    DiskStats,
    GPUHealth,
    GPUProcess,
    GPUStats,
    HistorySeries,
    MemoryStats,
    NetStats,
    ProcessRecord,
    Snapshot,
)

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
GPU_DEGRADED_TEMP = 90.0
NVIDIA_SMI_TIMEOUT = 3.0

_GPU_QUERY = (
    "utilization.gpu,memory.used,memory.total,temperature.gpu,fan.speed,"
    "clocks.gr,clocks.mem,power.draw,power.limit,"
    "ecc.errors.uncorrected.volatile.total,name"
)


class MetricsError(Exception):
    """Raised when a provider cannot produce a snapshot."""


class MetricsProvider(Protocol):
    """Source of snapshots, called from the UI loop only."""

    def init(self) -> None: ...

    def get_snapshot(self) -> Snapshot: ...

    def shutdown(self) -> None: ...


def _parse_number(value: str) -> float:
    """Parse an nvidia-smi field; '[N/A]', '[Not Supported]' and blanks are 0."""
    try:
        return float(value)
    except ValueError:
        return 0.0


class PsutilProvider:
    """
    Provider that reads the local host through psutil and nvidia-smi.

    Disk and network speeds are deltas between consecutive calls, so the first
    snapshot reports zero throughput.
    """

    def __init__(self, history_length: int = 100) -> None:
        self._history = HistorySeries(history_length, [0.0] * history_length)
        self._prev_io: tuple[float, int, int, int, int] | None = None
        self._gpu_available: bool | None = None  # None = not probed yet
        self._gpu_name = ""
        self._gpu_failures = 0

    def init(self) -> None:
        try:
            # First call returns 0.0 for every core; prime it
            psutil.cpu_percent(percpu=True)
            self._sample_io()
        except (psutil.Error, OSError) as e:
            raise MetricsError(f"psutil unavailable: {e}") from e

    def shutdown(self) -> None:
        self._prev_io = None

    def get_snapshot(self) -> Snapshot:
        try:
            return self._collect_snapshot()
        except (psutil.Error, OSError) as e:
            raise MetricsError(str(e)) from e

    def _collect_snapshot(self) -> Snapshot:
        gpu = self._read_gpu()
        gpu_pids = {p.pid for p in gpu.processes}

        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        disk_read, disk_write, net_down, net_up = self._sample_io()

        try:
            disk_usage = psutil.disk_usage("/").percent
        except OSError:
            disk_usage = 0.0

        return Snapshot(
            timestamp=datetime.now(),
            uptime_seconds=time.time() - psutil.boot_time(),
            cpu=self._read_cpu(),
            memory=MemoryStats(
                total=mem.total,
                used=mem.used,
                used_percent=mem.percent,
                swap_total=swap.total,
                swap_used=swap.used,
                swap_percent=swap.percent,
            ),
            gpu=gpu,
            disk=DiskStats(read_speed=disk_read, write_speed=disk_write, usage_percent=disk_usage),
            net=NetStats(download_speed=net_down, upload_speed=net_up),
            processes=tuple(self._collect_processes(gpu_pids)),
        )

    def _read_cpu(self) -> CPUStats:
        # Non-blocking, uses the previous call's data
        per_core = psutil.cpu_percent(percpu=True)
        package_temp, core_temps = self._read_temperatures()
        freq = psutil.cpu_freq()
        return CPUStats(
            global_usage_percent=sum(per_core) / len(per_core) if per_core else 0.0,
            per_core_usage=tuple(per_core),
            per_core_temp=core_temps,
            temperature=package_temp,
            load_avg=psutil.getloadavg(),
            frequency_mhz=freq.current if freq else 0.0,
        )

    def _read_temperatures(self) -> tuple[float, tuple[float, ...]]:
        try:
            temps = psutil.sensors_temperatures()
        except AttributeError:
            # Not provided on this platform
            return 0.0, ()
        if not temps:
            return 0.0, ()

        for chip in ("coretemp", "k10temp", "cpu_thermal", "acpitz"):
            entries = temps.get(chip)
            if not entries:
                continue
            cores = tuple(float(e.current) for e in entries if e.label.startswith("Core"))
            package = max((float(e.current) for e in entries), default=0.0)
            return package, cores
        return 0.0, ()

    def _sample_io(self) -> tuple[float, float, float, float]:
        """Return disk read/write and network down/up rates since the last call."""
        now = time.monotonic()
        disk = psutil.disk_io_counters()
        net = psutil.net_io_counters()
        current = (
            now,
            disk.read_bytes if disk else 0,
            disk.write_bytes if disk else 0,
            net.bytes_recv if net else 0,
            net.bytes_sent if net else 0,
        )
        previous, self._prev_io = self._prev_io, current
        if previous is None or now <= previous[0]:
            return 0.0, 0.0, 0.0, 0.0

        elapsed = now - previous[0]
        rates = tuple(max(cur - prev, 0) / elapsed for cur, prev in zip(current[1:], previous[1:]))
        return rates[0], rates[1], rates[2], rates[3]

    def _run_nvidia_smi(self, *args: str) -> list[list[str]]:
        result = subprocess.run(
            ["nvidia-smi", *args, "--format=csv,noheader,nounits"],
            capture_output=True,
            text=True,
            timeout=NVIDIA_SMI_TIMEOUT,
            check=True,
        )
        return [
            [part.strip() for part in line.split(",")]
            for line in result.stdout.strip().splitlines()
            if line.strip()
        ]

    def _read_gpu(self) -> GPUStats:
        """Read the first GPU via nvidia-smi."""
        if self._gpu_available is False:
            return GPUStats()

        try:
            rows = self._run_nvidia_smi(f"--query-gpu={_GPU_QUERY}")
            if not rows or len(rows[0]) < 11:
                raise ValueError("unexpected nvidia-smi output")
            apps = self._run_nvidia_smi("--query-compute-apps=pid,process_name,used_memory")
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            if self._gpu_available is None:
                logger.info("No NVIDIA GPU detected: %s", e)
                self._gpu_available = False
                return GPUStats()
            self._gpu_failures += 1
            logger.warning("GPU query failed: %s", e)
            return GPUStats(
                available=True,
                name=self._gpu_name,
                health=GPUHealth.FAILED,
                error_count=self._gpu_failures,
                history=self._history.values(),
            )

        self._gpu_available = True
        fields = rows[0]
        utilization = _parse_number(fields[0])
        memory_used = int(_parse_number(fields[1]) * MIB)
        memory_total = int(_parse_number(fields[2]) * MIB)
        temperature = _parse_number(fields[3])
        error_count = int(_parse_number(fields[9]))
        self._gpu_name = ",".join(fields[10:])
        self._history.push(utilization)

        processes = []
        for app in apps:
            if len(app) < 3:
                continue
            try:
                pid = int(app[0])
            except ValueError:
                continue
            processes.append(GPUProcess(pid=pid, name=app[1], memory_used=int(_parse_number(app[2]) * MIB)))

        if temperature >= GPU_DEGRADED_TEMP or error_count > 0:
            health = GPUHealth.DEGRADED
        else:
            health = GPUHealth.HEALTHY

        return GPUStats(
            available=True,
            name=self._gpu_name,
            utilization=utilization,
            memory_used=memory_used,
            memory_total=memory_total,
            memory_util=memory_used / memory_total * 100.0 if memory_total else 0.0,
            temperature=temperature,
            fan_speed=_parse_number(fields[4]),
            graphics_clock=int(_parse_number(fields[5])),
            memory_clock=int(_parse_number(fields[6])),
            power_usage=int(_parse_number(fields[7]) * 1000),
            power_limit=int(_parse_number(fields[8]) * 1000),
            health=health,
            error_count=error_count,
            history=self._history.values(),
            processes=tuple(processes),
        )

    def _collect_processes(self, gpu_pids: set[int]) -> list[ProcessRecord]:
        """
        Collect records of all running processes.

        Processes that die mid-poll, deny access or are zombies are skipped.
        """
        processes: list[ProcessRecord] = []

        attrs = [
            "pid",
            "name",
            "username",
            "status",
            "cpu_percent",
            "memory_percent",
            "num_threads",
            "nice",
        ]

        for proc in psutil.process_iter(attrs=attrs):
            try:
                info = proc.info
                pid = info.get("pid", 0)
                processes.append(
                    ProcessRecord(
                        pid=pid,
                        user=info.get("username") or "",
                        command=info.get("name") or "",
                        state=info.get("status") or "?",
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_percent=info.get("memory_percent") or 0.0,
                        threads=info.get("num_threads") or 0,
                        priority=info.get("nice") or 0,
                        uses_gpu=pid in gpu_pids,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes


class MockProvider:
    """Synthetic host for demos and tests: 8 cores, one GPU, 50 processes."""

    USERS = ("root", "jules", "systemd", "mysql")
    COMMANDS = ("chrome", "code", "go", "kworker", "bash", "python", "java")
    NUM_CORES = 8
    NUM_PROCESSES = 50
    NUM_GPU_PROCESSES = 5

    def __init__(self, seed: int | None = None, history_length: int = 100) -> None:
        self._rng = random.Random(seed)
        self._history_length = history_length
        self._history = HistorySeries(history_length)
        self._uptime = 0.0
        self._initialized = False

    def init(self) -> None:
        self._uptime = 3600.0
        # Fill the graph with some noise
        self._history = HistorySeries(
            self._history_length,
            (10 + self._rng.random() * 30 for _ in range(self._history_length)),
        )
        self._initialized = True

    def shutdown(self) -> None:
        self._initialized = False

    def get_snapshot(self) -> Snapshot:
        if not self._initialized:
            raise MetricsError("MockProvider.init() has not been called")

        rng = self._rng
        self._uptime += 1

        per_core = tuple(10 + rng.random() * 30 for _ in range(self.NUM_CORES))
        core_temps = tuple(40 + rng.random() * 10 for _ in range(self.NUM_CORES))

        total = 32 * 1024**3
        used = 12 * 1024**3 + rng.randrange(1024**3)

        utilization = float(50 + rng.randrange(30))
        self._history.push(utilization)

        processes = []
        gpu_processes = []
        for i in range(self.NUM_PROCESSES):
            uses_gpu = i < self.NUM_GPU_PROCESSES
            pid = 1000 + i
            name = rng.choice(self.COMMANDS)
            processes.append(
                ProcessRecord(
                    pid=pid,
                    user=rng.choice(self.USERS),
                    command=name,
                    state="R",
                    cpu_percent=rng.random() * 5,
                    memory_percent=rng.random() * 2,
                    threads=1 + rng.randrange(10),
                    priority=0,
                    uses_gpu=uses_gpu,
                )
            )
            if uses_gpu:
                gpu_processes.append(GPUProcess(pid=pid, name=name, memory_used=rng.randrange(1000) * MIB))

        memory_total = 24576 * MIB
        memory_used = 8 * 1024**3
        return Snapshot(
            timestamp=datetime.now(),
            uptime_seconds=self._uptime,
            cpu=CPUStats(
                global_usage_percent=20 + rng.random() * 10,
                per_core_usage=per_core,
                per_core_temp=core_temps,
                temperature=max(core_temps),
                load_avg=(1.5, 1.2, 0.8),
                frequency_mhz=3600.0,
            ),
            memory=MemoryStats(
                total=total,
                used=used,
                used_percent=used / total * 100,
                swap_total=8 * 1024**3,
                swap_used=1024**3,
                swap_percent=12.5,
            ),
            gpu=GPUStats(
                available=True,
                name="NVIDIA GeForce RTX 4090",
                utilization=utilization,
                memory_used=memory_used,
                memory_total=memory_total,
                memory_util=memory_used / memory_total * 100.0,
                temperature=float(60 + rng.randrange(10)),
                fan_speed=float(40 + rng.randrange(10)),
                graphics_clock=2500,
                memory_clock=10500,
                power_usage=150000,
                power_limit=450000,
                health=GPUHealth.HEALTHY,
                history=self._history.values(),
                processes=tuple(gpu_processes),
            ),
            disk=DiskStats(
                read_speed=10 * MIB * (0.8 + rng.random() * 0.4),
                write_speed=5 * MIB * (0.8 + rng.random() * 0.4),
                usage_percent=55.0,
            ),
            net=NetStats(
                download_speed=2 * MIB * (0.8 + rng.random() * 0.4),
                upload_speed=1 * MIB * (0.8 + rng.random() * 0.4),
            ),
            processes=tuple(processes),
        )
