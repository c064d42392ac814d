"""
contactrack_sync.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from contactrack_sync.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
)

__all__ = [
    "ConfigLoader",
    "ConfigError",
    "DEFAULT_CONFIG_FILE",
]
