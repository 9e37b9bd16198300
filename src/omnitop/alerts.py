"""Threshold alerts per panel category."""

from dataclasses import dataclass

from omnitop.config import AlertThresholds
from omnitop.models import Snapshot


@dataclass(slots=True, frozen=True)
class AlertFlags:
    cpu: bool = False
    gpu: bool = False
    memory: bool = False
    disk: bool = False


def evaluate_alerts(snapshot: Snapshot, thresholds: AlertThresholds) -> AlertFlags:
    """
    Flag every category with a metric at or above its threshold.

    Re-evaluated from scratch each tick, so a metric hovering around its
    threshold toggles the flag on every crossing.
    """
    return AlertFlags(
        cpu=(
            snapshot.cpu.global_usage_percent >= thresholds.cpu_usage_percent
            or snapshot.cpu.temperature >= thresholds.cpu_temp_celsius
        ),
        gpu=(
            snapshot.gpu.utilization >= thresholds.gpu_usage_percent
            or snapshot.gpu.temperature >= thresholds.gpu_temp_celsius
        ),
        memory=snapshot.memory.used_percent >= thresholds.memory_usage_percent,
        disk=snapshot.disk.usage_percent >= thresholds.disk_usage_percent,
    )
