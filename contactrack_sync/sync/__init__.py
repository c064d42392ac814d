"""
Contact records and dataset reconciliation.

This module defines the contact record model and the coordinator that
decides, per sync, whether the local dataset or the newest remote backup
is kept.
"""

from contactrack_sync.sync.contact import Contact, latest_update
from contactrack_sync.sync.coordinator import SyncCoordinator
from contactrack_sync.sync.outcome import Resolution, SyncOutcome

__all__ = [
    "Contact",
    "Resolution",
    "SyncCoordinator",
    "SyncOutcome",
    "latest_update",
]
