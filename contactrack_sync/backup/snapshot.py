"""
Backup snapshot format and remote listing metadata.

Snapshot wire format (JSON):

    {
        "version": "1.0",
        "timestamp": "2024-01-20T10:30:00.000Z",
        "people": [...],
        "totalCount": 12
    }

The field names and the version string are a durable compatibility
surface: readers accept any document whose ``people`` array holds contact
records and reject everything else.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from contactrack_sync.sync.contact import Contact, format_timestamp, parse_timestamp

SNAPSHOT_VERSION = "1.0"

# Backup file naming: contactrack-backup-<YYYY-MM-DD>-<millis>.json
BACKUP_PREFIX = "contactrack-backup-"
BACKUP_SUFFIX = ".json"

logger = logging.getLogger(__name__)


def build_backup_filename(now: Optional[datetime] = None) -> str:
    """
    Build the file name for a new backup.

    Args:
        now: Capture instant (default: current UTC time)

    Returns:
        Name such as ``contactrack-backup-2024-01-20-1705746600000.json``
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{BACKUP_PREFIX}{now.strftime('%Y-%m-%d')}-{millis}{BACKUP_SUFFIX}"


@dataclass
class Snapshot:
    """
    Immutable copy of a dataset as stored in the backup folder.

    Attributes:
        timestamp: ISO capture instant
        people: Contacts in the snapshot, in dataset order
        version: Format version
    """

    timestamp: str
    people: list[Contact] = field(default_factory=list)
    version: str = SNAPSHOT_VERSION

    @classmethod
    def capture(cls, people: list[Contact], now: Optional[datetime] = None) -> Snapshot:
        """Create a snapshot of a dataset at ``now`` (default: current time)."""
        stamp = format_timestamp(now or datetime.now(timezone.utc))
        return cls(timestamp=stamp, people=list(people))

    @property
    def total_count(self) -> int:
        return len(self.people)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "people": [p.to_dict() for p in self.people],
            "totalCount": self.total_count,
        }

    def to_json(self) -> str:
        """Serialize as pretty-printed JSON (non-ASCII kept as-is)."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> Optional[Snapshot]:
        """
        Parse a snapshot body.

        Args:
            text: Raw JSON (bytes are decoded as UTF-8)

        Returns:
            Snapshot, or None if the body is not JSON, not an object, or
            has no ``people`` array, or if any entry in ``people`` is not a
            contact record with a string id
        """
        try:
            if isinstance(text, bytes):
                text = text.decode("utf-8")
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Backup data is not valid JSON: {e}")
            return None

        if not isinstance(data, dict) or not isinstance(data.get("people"), list):
            logger.error("Invalid backup data format: missing 'people' array")
            return None

        people: list[Contact] = []
        for index, record in enumerate(data["people"]):
            try:
                people.append(Contact.from_dict(record))
            except (TypeError, ValueError) as e:
                # The dataset is returned whole or not at all
                logger.error(f"Unreadable contact #{index} in backup: {e}")
                return None

        timestamp = data.get("timestamp")
        return cls(
            timestamp=timestamp if isinstance(timestamp, str) else "",
            people=people,
            version=str(data.get("version", SNAPSHOT_VERSION)),
        )


@dataclass(frozen=True)
class BackupDescriptor:
    """
    Listing metadata for a remote backup, without its payload.

    Attributes:
        id: Drive file identifier
        name: File name
        last_modified: Drive's own modification time (authoritative clock)
        size: Size in bytes, when reported
    """

    id: str
    name: str
    last_modified: datetime
    size: Optional[int] = None

    @classmethod
    def from_api(cls, file: dict[str, Any]) -> Optional[BackupDescriptor]:
        """
        Build a descriptor from a Drive file resource.

        Returns:
            Descriptor, or None if the resource lacks an id or a readable
            modifiedTime
        """
        file_id = file.get("id")
        modified = parse_timestamp(file.get("modifiedTime"))
        if not file_id or modified is None:
            return None

        size: Optional[int] = None
        try:
            if file.get("size") is not None:
                size = int(file["size"])
        except (TypeError, ValueError):
            size = None

        return cls(
            id=str(file_id),
            name=str(file.get("name", "")),
            last_modified=modified,
            size=size,
        )


def newest_first(descriptors: list[BackupDescriptor]) -> list[BackupDescriptor]:
    """Sort descriptors by last_modified, newest first (ties: name descending)."""
    return sorted(
        descriptors, key=lambda d: (d.last_modified, d.name), reverse=True
    )
