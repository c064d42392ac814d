"""
SQLite key-value store for the local contact list and sync settings.

Holds the whole contact list as one JSON blob, plus small settings such as
the last successful sync time and the auto-sync flag. Every operation is
best-effort: storage failures are logged and turned into empty results so
the application keeps working without persistence.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from contactrack_sync.sync.contact import Contact, find_duplicate_ids

# Keys inside the key-value table
PEOPLE_KEY = "contactrack-people"
LAST_SYNC_KEY = "contactrack-last-sync"
AUTO_SYNC_KEY = "contactrack-auto-sync"

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Local persistence for the contact dataset.

    The dataset is only ever replaced as a whole: ``save_people`` overwrites
    the stored list, it never merges.

    Usage:
        store = LocalStore(Path("~/.contactrack-sync/contactrack.db"))
        people = store.load_people()
        store.save_people(people)

        # Or use in-memory for testing:
        store = LocalStore(":memory:")
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for an
                     in-memory database
        """
        if str(db_path) == ":memory:":
            self.db_path = ":memory:"
        else:
            self.db_path = str(Path(db_path).expanduser())
        self._shared_connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        In-memory databases share one connection so the table persists
        across operations; file databases open a new connection each time.
        """
        if self.db_path == ":memory:":
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(":memory:")
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Creates the schema on first use and commits on success.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = self._get_connection()
        is_shared = self.db_path == ":memory:"
        try:
            if not self._initialized:
                conn.executescript(SCHEMA)
                self._initialized = True
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if not is_shared:
                conn.close()

    # =========================================================================
    # Raw key-value access
    # =========================================================================

    def get_value(self, key: str) -> Optional[str]:
        """
        Read a raw value.

        Returns:
            Stored string, or None if missing or the store is unavailable
        """
        try:
            with self.connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
                return row["value"] if row else None
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to read '{key}' from local store: {e}")
            return None

    def set_value(self, key: str, value: str) -> bool:
        """
        Write a raw value, replacing any previous one.

        Returns:
            True if the value was stored, False on storage failure
        """
        try:
            with self.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
            return True
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to write '{key}' to local store: {e}")
            return False

    def delete_value(self, key: str) -> bool:
        """Remove a raw value. Returns False on storage failure."""
        try:
            with self.connection() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return True
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to delete '{key}' from local store: {e}")
            return False

    # =========================================================================
    # Contact dataset
    # =========================================================================

    def save_people(self, people: list[Contact]) -> bool:
        """
        Replace the stored contact list.

        Args:
            people: Full dataset to store

        Returns:
            True if stored, False if serialization or storage failed
        """
        duplicates = find_duplicate_ids(people)
        if duplicates:
            logger.warning(f"Saving dataset with duplicate contact ids: {duplicates}")

        try:
            data = json.dumps([p.to_dict() for p in people], ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize contacts: {e}")
            return False
        return self.set_value(PEOPLE_KEY, data)

    def load_people(self) -> list[Contact]:
        """
        Load the stored contact list.

        Unreadable records are skipped with a warning; the rest of the
        dataset is still returned.

        Returns:
            Stored dataset, or an empty list when nothing is stored or the
            stored value is not a JSON array
        """
        data = self.get_value(PEOPLE_KEY)
        if not data:
            return []
        try:
            records = json.loads(data)
        except ValueError as e:
            logger.error(f"Failed to load contacts from local store: {e}")
            return []
        if not isinstance(records, list):
            logger.error("Failed to load contacts from local store: not an array")
            return []

        people: list[Contact] = []
        for index, record in enumerate(records):
            try:
                people.append(Contact.from_dict(record))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored contact #{index}: {e}")
        return people

    def clear_people(self) -> bool:
        """Remove the stored contact list."""
        return self.delete_value(PEOPLE_KEY)

    def is_storage_available(self) -> bool:
        """Check that the store can be written and read back."""
        probe_key = "storage-test"
        if not self.set_value(probe_key, probe_key):
            return False
        available = self.get_value(probe_key) == probe_key
        self.delete_value(probe_key)
        return available

    def export_people(self, people: list[Contact]) -> str:
        """
        Render a dataset as pretty-printed JSON for manual backups.

        Returns:
            JSON text, or "[]" if the dataset cannot be serialized
        """
        try:
            return json.dumps(
                [p.to_dict() for p in people], indent=2, ensure_ascii=False
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to export contacts: {e}")
            return "[]"

    def import_people(self, json_data: str) -> list[Contact]:
        """
        Parse contacts from exported JSON.

        Entries without string ``id``, ``name`` and ``relation`` fields are
        dropped, as are later entries reusing an id already seen.

        Args:
            json_data: JSON text holding an array of contact records

        Returns:
            Parsed contacts

        Raises:
            ValueError: If the text is not valid JSON or not an array
        """
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to import contacts: {e}")
            raise ValueError("Invalid JSON data") from e

        if not isinstance(data, list):
            raise ValueError("Invalid data format: expected a JSON array")

        people: list[Contact] = []
        seen: set[str] = set()
        for item in data:
            if not (
                isinstance(item, dict)
                and isinstance(item.get("id"), str)
                and isinstance(item.get("name"), str)
                and isinstance(item.get("relation"), str)
            ):
                continue
            try:
                contact = Contact.from_dict(item)
            except ValueError:
                continue
            if contact.id in seen:
                logger.warning(f"Skipping duplicate contact id: {contact.id}")
                continue
            seen.add(contact.id)
            people.append(contact)

        dropped = len(data) - len(people)
        if dropped:
            logger.info(f"Dropped {dropped} invalid or duplicate entries on import")
        return people

    # =========================================================================
    # Sync settings
    # =========================================================================

    def get_last_sync(self) -> Optional[datetime]:
        """Time of the last successful sync, if recorded."""
        value = self.get_value(LAST_SYNC_KEY)
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Ignoring unreadable last sync time: {value}")
            return None

    def set_last_sync(self, when: Optional[datetime] = None) -> bool:
        """Record the time of a successful sync (default: now, UTC)."""
        when = when or datetime.now(timezone.utc)
        return self.set_value(LAST_SYNC_KEY, when.isoformat())

    def get_auto_sync(self) -> bool:
        """Whether automatic sync is switched on."""
        return self.get_value(AUTO_SYNC_KEY) == "true"

    def set_auto_sync(self, enabled: bool) -> bool:
        """Persist the automatic sync switch."""
        return self.set_value(AUTO_SYNC_KEY, "true" if enabled else "false")


__all__ = [
    "LocalStore",
    "PEOPLE_KEY",
    "LAST_SYNC_KEY",
    "AUTO_SYNC_KEY",
]
