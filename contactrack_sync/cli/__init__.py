"""CLI package for contactrack_sync."""

from contactrack_sync.cli.formatters import show_backup_table, show_outcome
from contactrack_sync.cli.main import Services, build_services, cli

__all__ = [
    "Services",
    "build_services",
    "cli",
    "show_backup_table",
    "show_outcome",
]
