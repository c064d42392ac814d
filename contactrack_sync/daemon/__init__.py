"""
contactrack_sync.daemon - Auto-sync scheduler module

Background auto-sync with configurable intervals, connectivity probing
and signal handling.
"""

import re

_INTERVAL_PATTERN = re.compile(r"^(\d+)\s*([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_interval(interval: str | int) -> int:
    """Convert an interval such as ``30s``, ``5m``, ``1h`` or ``1d`` to seconds.

    Plain integers and numeric strings are taken as seconds.

    Raises:
        ValueError: For unknown units, malformed strings, booleans and
            other types.
    """
    if isinstance(interval, bool):
        raise ValueError("Invalid interval type: bool. Expected str or int.")

    if isinstance(interval, int):
        return interval

    if not isinstance(interval, str):
        raise ValueError(
            f"Invalid interval type: {type(interval).__name__}. Expected str or int."
        )

    text = interval.strip().lower()
    if text.isdigit():
        return int(text)

    match = _INTERVAL_PATTERN.match(text)
    if not match:
        raise ValueError(
            f"Invalid interval format: '{interval}'. "
            "Use format like '30s', '5m', '1h', or '1d'."
        )
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


# Imports after parse_interval to avoid circular dependencies
from contactrack_sync.daemon.scheduler import (  # noqa: E402
    DEFAULT_MIN_SYNC_INTERVAL,
    DEFAULT_SYNC_INTERVAL,
    AutoSyncScheduler,
    DaemonAlreadyRunningError,
    DaemonError,
    PIDFileError,
    PIDFileManager,
    SchedulerStats,
    default_pid_file,
)

__all__ = [
    "parse_interval",
    "AutoSyncScheduler",
    "SchedulerStats",
    "DaemonError",
    "PIDFileError",
    "DaemonAlreadyRunningError",
    "PIDFileManager",
    "default_pid_file",
    "DEFAULT_SYNC_INTERVAL",
    "DEFAULT_MIN_SYNC_INTERVAL",
]
