"""
Logging setup for contactrack_sync.

All modules log through ``logging.getLogger(__name__)`` below the
``contactrack_sync`` logger, which this module configures:

- a console handler on stderr (ANSI colors on capable terminals)
- an optional daily log file, always at DEBUG
- the level taken from ``--verbose`` or the environment
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from contactrack_sync.utils.paths import resolve_config_dir

ROOT_LOGGER_NAME = "contactrack_sync"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d]: %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_PREFIX = "contactrack_sync_"

ENV_LOG_LEVEL = "CONTACTRACK_SYNC_LOG_LEVEL"
ENV_DEBUG = "CONTACTRACK_SYNC_DEBUG"
ENV_LOG_FILE = "CONTACTRACK_SYNC_LOG_FILE"

_TRUTHY = {"1", "true", "yes", "on"}
_FILE_LOGGING_OFF = {"", "none", "disabled", "off"}


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps each console line in an ANSI color per level."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self.terminal_supports_color()

    @staticmethod
    def terminal_supports_color() -> bool:
        """True for a TTY stdout, unless NO_COLOR is set or TERM is dumb."""
        isatty = getattr(sys.stdout, "isatty", None)
        if isatty is None or not isatty():
            return False
        if os.environ.get("NO_COLOR"):
            return False
        return os.environ.get("TERM", "") != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if not self.use_colors or color is None:
            return line
        return f"{color}{line}{self.RESET}"


def get_log_level_from_env() -> int:
    """
    Resolve the log level from the environment.

    CONTACTRACK_SYNC_DEBUG switches straight to DEBUG; otherwise
    CONTACTRACK_SYNC_LOG_LEVEL names a level (WARN is accepted). Unknown
    names fall back to INFO.
    """
    if os.environ.get(ENV_DEBUG, "").strip().lower() in _TRUTHY:
        return logging.DEBUG

    name = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def daily_log_name(day: Optional[datetime] = None) -> str:
    day = day or datetime.now()
    return f"{LOG_FILE_PREFIX}{day:%Y%m%d}.log"


def get_log_file_path() -> Optional[Path]:
    """
    Log file chosen by CONTACTRACK_SYNC_LOG_FILE.

    Returns:
        The configured path, None if file logging is switched off, or the
        daily file under ``<config dir>/logs`` when the variable is unset
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is None:
        return resolve_config_dir() / "logs" / daily_log_name()
    if override.strip().lower() in _FILE_LOGGING_OFF:
        return None
    return Path(override)


def _console_handler(level: int, verbose: bool, use_colors: bool) -> logging.Handler:
    fmt = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if use_colors:
        handler.setFormatter(ColoredFormatter(fmt, DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the ``contactrack_sync`` logger.

    Safe to call more than once; existing handlers are replaced.

    Args:
        level: Console level; read from the environment when None
        verbose: Force DEBUG and include source locations
        log_dir: Directory for the daily log file
        log_file: Exact log file path (takes precedence over log_dir)
        enable_file_logging: Set False for console-only logging
        use_colors: Color console output when the terminal allows it

    Returns:
        The configured package logger
    """
    if verbose:
        level = logging.DEBUG
    elif level is None:
        level = get_log_level_from_env()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(_console_handler(level, verbose, use_colors))

    if not enable_file_logging:
        return logger

    if log_file is not None:
        path: Optional[Path] = Path(log_file)
    elif log_dir is not None:
        path = Path(log_dir) / daily_log_name()
    else:
        path = get_log_file_path()

    if path is not None:
        try:
            logger.addHandler(_file_handler(path))
            logger.debug(f"Logging to {path}")
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {path}: {e}")

    return logger


def cleanup_old_logs(log_dir: Path, keep_count: int = 10) -> int:
    """
    Delete all but the newest ``keep_count`` daily log files.

    Args:
        log_dir: Directory holding the log files
        keep_count: Files to keep; 0 or less keeps everything

    Returns:
        Number of files deleted
    """
    log_dir = Path(log_dir)
    if keep_count <= 0 or not log_dir.is_dir():
        return 0

    logs = sorted(
        log_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
    )
    expired = logs[:-keep_count] if len(logs) > keep_count else []

    deleted = 0
    for path in expired:
        try:
            path.unlink()
            deleted += 1
        except OSError as e:
            logging.getLogger(__name__).debug(f"Could not delete {path}: {e}")
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, placed under the package logger if needed."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_log_level(level: int) -> None:
    """Change the console level at runtime. File handlers stay at DEBUG."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def disable_logging() -> None:
    logging.getLogger(ROOT_LOGGER_NAME).disabled = True


def enable_logging() -> None:
    logging.getLogger(ROOT_LOGGER_NAME).disabled = False


__all__ = [
    "setup_logging",
    "get_logger",
    "set_log_level",
    "disable_logging",
    "enable_logging",
    "cleanup_old_logs",
    "daily_log_name",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "ROOT_LOGGER_NAME",
    "CONSOLE_FORMAT",
    "FILE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "LOG_FILE_PREFIX",
]
