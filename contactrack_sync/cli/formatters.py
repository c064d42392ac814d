"""CLI output formatting functions.

This module contains functions for displaying backup listings and the
outcome of backup, restore and sync operations on the command line.
"""

from typing import TYPE_CHECKING, Optional

import click

from contactrack_sync.sync.outcome import Resolution

if TYPE_CHECKING:
    from contactrack_sync.backup.snapshot import BackupDescriptor
    from contactrack_sync.sync.outcome import SyncOutcome


RESOLUTION_LABELS = {
    Resolution.KEPT_LOCAL: "Local data was newer and has been uploaded.",
    Resolution.KEPT_REMOTE: "Remote data was newer or equal and has been restored.",
}


def format_size(size: Optional[int]) -> str:
    """Render a byte count as kilobytes ("-" when unknown)."""
    if size is None:
        return "-"
    return f"{size / 1024:.1f} KB"


def show_backup_table(backups: list["BackupDescriptor"]) -> None:
    """
    Display remote backups, newest first.

    Args:
        backups: Descriptors sorted newest first
    """
    click.echo(f"{'Name':<48} {'Modified (local)':<20} {'Size':>10}")
    click.echo("-" * 80)

    for backup in backups:
        modified = backup.last_modified.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"{backup.name:<48} {modified:<20} {format_size(backup.size):>10}")

    click.echo(f"\nTotal: {len(backups)} backup(s)")


def show_outcome(outcome: "SyncOutcome") -> None:
    """
    Display an operation outcome in green (success) or red (failure).

    Failures are written to stderr.
    """
    if outcome.succeeded:
        click.echo(click.style(outcome.message, fg="green"))
        if outcome.resolution is not None:
            click.echo(RESOLUTION_LABELS[outcome.resolution])
    else:
        click.echo(click.style(f"Error: {outcome.message}", fg="red"), err=True)
