"""
YAML configuration for contactrack-sync.

The configuration file is optional: a missing file means "use the CLI
defaults". A file that exists but cannot be read, is not a mapping, or
holds a known key with a bad value raises ConfigError.

Example ``config.yaml``::

    client_id: 1234.apps.googleusercontent.com
    client_secret: ...
    auto_sync: true
    sync_interval: 30m
    min_sync_interval: 5m
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from contactrack_sync.daemon import parse_interval
from contactrack_sync.utils.paths import CONFIG_FILE_NAME, resolve_config_dir

DEFAULT_CONFIG_FILE = CONFIG_FILE_NAME

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# Known keys and the types they accept; anything else is ignored
VALID_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    "client_id": str,
    "client_secret": str,
    "api_key": str,
    "consent_timeout": int,
    "auth_timeout": int,
    "api_max_retries": int,
    "api_initial_retry_delay": (int, float),
    "api_max_retry_delay": (int, float),
    "auto_sync": bool,
    "sync_interval": (str, int),
    "min_sync_interval": (str, int),
    "data_file": str,
    "log_dir": str,
    "log_retention_count": int,
    "verbose": bool,
}

POSITIVE_INT_KEYS = (
    "consent_timeout",
    "auth_timeout",
    "api_max_retries",
    "log_retention_count",
)
POSITIVE_FLOAT_KEYS = ("api_initial_retry_delay", "api_max_retry_delay")
INTERVAL_KEYS = ("sync_interval", "min_sync_interval")


def _type_name(expected: type[Any] | tuple[type[Any], ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _check_type(key: str, value: Any) -> None:
    expected = VALID_KEYS[key]
    # bool is an int subclass; only bool keys accept it
    if isinstance(value, bool) and expected is not bool:
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ConfigError(
            f"Invalid type for '{key}': expected {_type_name(expected)}, "
            f"got {type(value).__name__}"
        )


class ConfigLoader:
    """
    Loads ``config.yaml`` from the configuration directory.

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # Or an explicit file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Args:
            config_dir: Configuration directory (default: the
                        CONTACTRACK_SYNC_CONFIG_DIR variable or
                        ~/.contactrack-sync)
            config_file: File name inside config_dir
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    def _get_config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """Load the configuration file in the configuration directory."""
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            path: File to read

        Returns:
            The parsed mapping; empty if the file is missing or empty

        Raises:
            ConfigError: If the file cannot be read or parsed, or does not
                hold a mapping
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"No configuration file at {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                "Configuration file must contain a YAML dictionary, "
                f"got {type(data).__name__}"
            )

        logger.debug(f"Loaded configuration from {path}")
        return data

    def validate(self, config: dict[str, Any]) -> None:
        """
        Check the known keys of a configuration mapping.

        Raises:
            ConfigError: On a wrong type, a non-positive count, delay or
                timeout, or an unparseable interval
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        known = [key for key in config if key in VALID_KEYS]
        for key in known:
            _check_type(key, config[key])

        for key in POSITIVE_INT_KEYS:
            if key in config and config[key] < 1:
                raise ConfigError(f"{key} must be >= 1, got {config[key]}")

        for key in POSITIVE_FLOAT_KEYS:
            if key in config and config[key] <= 0:
                raise ConfigError(f"{key} must be > 0, got {config[key]}")

        for key in INTERVAL_KEYS:
            if key not in config:
                continue
            try:
                seconds = parse_interval(config[key])
            except ValueError as e:
                raise ConfigError(f"Invalid {key}: {e}") from e
            if seconds < 1:
                raise ConfigError(f"{key} must be at least 1 second")

    def load_and_validate(self) -> dict[str, Any]:
        """Load the configuration file and validate it."""
        config = self.load()
        if config:
            self.validate(config)
        return config
