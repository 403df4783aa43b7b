"""Central configuration for hrvlab.

All tunables live here and are read via::

    from hrvlab.config import settings

A handful of values can be overridden through environment variables
(``HRVLAB_*``); CLI options take precedence over both.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class HrvSettings:
    """Outlier filtering and statistics parameters."""

    # Moving-MAD threshold (ms of half-deviation from the local mean)
    outlier_filter: float = float(os.getenv("HRVLAB_OUTLIER_FILTER", "5.0"))

    # Samples per Moving-MAD window; the center sample is classified
    filter_window: int = 5

    # Fewer RR intervals than this means "not enough data yet"
    min_rr_count: int = 4

    # Time-series block window when no stats window is configured (s)
    ts_window_s: float = float(os.getenv("HRVLAB_TS_WINDOW_S", "60.0"))

    # Statistics refresh cadence while recording (s)
    refresh_interval_s: float = float(os.getenv("HRVLAB_REFRESH_S", "1.0"))


@dataclass(frozen=True)
class BleSettings:
    """Bluetooth Heart Rate Service identifiers and scan defaults."""

    hr_service_uuid: str = "0000180d-0000-1000-8000-00805f9b34fb"
    hr_measurement_uuid: str = "00002a37-0000-1000-8000-00805f9b34fb"
    scan_timeout_s: float = float(os.getenv("HRVLAB_SCAN_TIMEOUT", "10.0"))


@dataclass(frozen=True)
class PathSettings:
    sessions_dir: Path = Path(os.getenv("HRVLAB_SESSIONS_DIR", "sessions"))


@dataclass(frozen=True)
class AppSettings:
    hrv: HrvSettings = field(default_factory=HrvSettings)
    ble: BleSettings = field(default_factory=BleSettings)
    paths: PathSettings = field(default_factory=PathSettings)


settings = AppSettings()


def configure_logging(level: int | str = logging.WARNING) -> None:
    """Install a single stream handler on the ``hrvlab`` logger."""
    logger = logging.getLogger("hrvlab")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    # Re-configuring must not stack handlers
    if logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
