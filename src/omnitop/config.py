"""Configuration loading for omnitop.

Settings live in a JSON profile, by default ~/.config/omnitop/config.json.
A missing file is replaced by the defaults; an unreadable or corrupt one is
ignored in favour of the defaults so the dashboard always starts.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path.home() / ".config" / "omnitop" / "config.json"
DEFAULT_THEME = "lich-king"


@dataclass(slots=True)
class AlertThresholds:
    """Limits at or above which a panel switches to alert styling."""

    cpu_usage_percent: float = 90.0
    cpu_temp_celsius: float = 85.0
    gpu_usage_percent: float = 98.0
    gpu_temp_celsius: float = 85.0
    memory_usage_percent: float = 95.0
    disk_usage_percent: float = 90.0


def _default_column_widths() -> dict[str, float]:
    return {"gpu": 0.30, "process": 0.40, "cpu": 0.30}


@dataclass(slots=True)
class ProfileConfiguration:
    """User-configurable settings."""

    theme: str = DEFAULT_THEME
    column_widths: dict[str, float] = field(default_factory=_default_column_widths)
    refresh_interval: int = 1000  # Milliseconds
    max_processes: int = 200
    gpu_history_length: int = 100
    show_tooltips: bool = True
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_config() -> ProfileConfiguration:
    """Return the hardcoded default configuration."""
    return ProfileConfiguration()


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _from_dict(data: dict[str, Any]) -> ProfileConfiguration:
    """Overlay a parsed JSON document onto the defaults, field by field."""
    cfg = default_config()

    theme = data.get("theme", cfg.theme)
    if isinstance(theme, str) and theme:
        cfg.theme = theme
    else:
        logger.warning("ignoring invalid theme %r", theme)

    widths = data.get("column_widths", {})
    if isinstance(widths, dict):
        for key, value in widths.items():
            if _number(value) and 0.0 < value < 1.0:
                cfg.column_widths[key] = float(value)
            else:
                logger.warning("ignoring invalid column width %s=%r", key, value)
    else:
        logger.warning("ignoring invalid column_widths %r", widths)

    for name in ("refresh_interval", "max_processes", "gpu_history_length"):
        if name not in data:
            continue
        if _positive_int(data[name]):
            setattr(cfg, name, data[name])
        else:
            logger.warning("ignoring invalid %s %r", name, data[name])

    if "show_tooltips" in data:
        if isinstance(data["show_tooltips"], bool):
            cfg.show_tooltips = data["show_tooltips"]
        else:
            logger.warning("ignoring invalid show_tooltips %r", data["show_tooltips"])

    thresholds = data.get("alert_thresholds", {})
    if isinstance(thresholds, dict):
        for key, value in thresholds.items():
            if not hasattr(cfg.alert_thresholds, key):
                logger.warning("ignoring unknown alert threshold %s", key)
            elif _number(value):
                setattr(cfg.alert_thresholds, key, float(value))
            else:
                logger.warning("ignoring invalid alert threshold %s=%r", key, value)
    else:
        logger.warning("ignoring invalid alert_thresholds %r", thresholds)

    return cfg


def save_config(path: Path, config: ProfileConfiguration) -> None:
    """Write the configuration as indented JSON readable only by the owner."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(config.to_dict(), indent=2) + "\n"
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(payload)


def load_config(path: Path | None = None) -> ProfileConfiguration:
    """
    Load the configuration profile.

    Args:
        path: Config file location. Defaults to ~/.config/omnitop/config.json.

    Returns:
        The parsed configuration, or the defaults when the file is missing,
        unreadable or corrupt. A missing file is created with the defaults on
        a best-effort basis.
    """
    path = path or DEFAULT_PATH

    if not path.exists():
        cfg = default_config()
        try:
            save_config(path, cfg)
        except OSError as e:
            logger.debug("could not write default config to %s: %s", path, e)
        return cfg

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("using default config, cannot read %s: %s", path, e)
        return default_config()

    if not isinstance(data, dict):
        logger.warning("using default config, %s does not hold a JSON object", path)
        return default_config()

    return _from_dict(data)
