"""
Remote backup storage for contact data.

This module stores versioned JSON snapshots of the contact list in a
dedicated Google Drive folder and restores them on request.
"""

from contactrack_sync.backup.repository import BackupRepository
from contactrack_sync.backup.snapshot import (
    BACKUP_PREFIX,
    SNAPSHOT_VERSION,
    BackupDescriptor,
    Snapshot,
    build_backup_filename,
)

__all__ = [
    "BackupRepository",
    "BackupDescriptor",
    "Snapshot",
    "BACKUP_PREFIX",
    "SNAPSHOT_VERSION",
    "build_backup_filename",
]
