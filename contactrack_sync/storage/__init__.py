"""
contactrack_sync.storage - Local persistence module

SQLite-backed key-value store for the contact list and sync settings.
"""

from contactrack_sync.storage.local_store import (
    AUTO_SYNC_KEY,
    LAST_SYNC_KEY,
    PEOPLE_KEY,
    LocalStore,
)

__all__ = ["LocalStore", "PEOPLE_KEY", "LAST_SYNC_KEY", "AUTO_SYNC_KEY"]
