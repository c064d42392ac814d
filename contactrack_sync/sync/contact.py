"""
Contact data model for ContacTrack backup synchronization.

Provides a Contact representation with methods for:
- Converting to/from the camelCase JSON record stored locally and in backups
- Reading the update timestamp that drives conflict resolution
- Bumping the update timestamp on local mutation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Wire name -> attribute name for optional scalar fields
OPTIONAL_FIELDS = {
    "lastNameKana": "last_name_kana",
    "firstNameKana": "first_name_kana",
    "age": "age",
    "grade": "grade",
    "education": "education",
    "memo": "memo",
    "meetDate": "meet_date",
    "tags": "tags",
    "contactInfo": "contact_info",
}

# Wire name -> attribute name for fields every new contact carries
REQUIRED_FIELDS = {
    "id": "id",
    "lastName": "last_name",
    "firstName": "first_name",
    "name": "name",
    "relation": "relation",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

FIELD_ATTRS = {**REQUIRED_FIELDS, **OPTIONAL_FIELDS}
KNOWN_FIELDS = set(FIELD_ATTRS)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a timezone-aware datetime.

    A trailing 'Z' is read as UTC and naive values are assumed to be UTC.

    Args:
        value: Timestamp string (anything else yields None)

    Returns:
        Aware datetime, or None if the value cannot be parsed
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a UTC ISO string with milliseconds and 'Z'."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass
class Contact:
    """
    A person in the user's contact list.

    The sync engine treats a contact as an opaque record apart from
    ``updated_at``, which is compared against the remote backup time.

    Attributes:
        id: Stable identifier, unique within a dataset
        last_name: Family name
        first_name: Given name
        name: Display name
        relation: How the user knows this person (e.g. "university classmate")
        created_at: ISO timestamp, set once when the contact is created
        updated_at: ISO timestamp, bumped on every local change
        last_name_kana: Phonetic reading of the family name
        first_name_kana: Phonetic reading of the given name
        age: Age in years
        grade: Seniority relative to the user (+2 senior, 0 same year, -1 junior)
        education: Highest education level (e.g. "学卒")
        memo: Free-form notes
        meet_date: Date the user first met this person
        tags: Free-form labels
        contact_info: Mapping with optional "email", "phone", "social" keys
        extra: Fields this version does not know about, kept for round-trips
        wire_keys: Keys of the record this contact was read from, if any

    Usage:
        contact = Contact.from_dict(record)
        contact.touch()
        record = contact.to_dict()
    """

    id: str
    last_name: str = ""
    first_name: str = ""
    name: str = ""
    relation: str = ""
    created_at: str = ""
    updated_at: str = ""

    last_name_kana: Optional[str] = None
    first_name_kana: Optional[str] = None
    age: Optional[int] = None
    grade: Optional[int] = None
    education: Optional[str] = None
    memo: Optional[str] = None
    meet_date: Optional[str] = None
    tags: Optional[list[str]] = None
    contact_info: Optional[dict[str, str]] = None

    extra: dict[str, Any] = field(default_factory=dict)
    wire_keys: Optional[tuple[str, ...]] = field(
        default=None, compare=False, repr=False
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Contact:
        """
        Create a Contact from its JSON record.

        Values are taken as stored, without coercion, and the record's keys
        are remembered in ``wire_keys`` so that ``to_dict`` writes the same
        key set back in the same order.

        Args:
            data: Dictionary using the camelCase wire names

        Returns:
            Contact instance

        Raises:
            ValueError: If data is not a mapping or has no string id
        """
        if not isinstance(data, dict):
            raise ValueError(
                f"Contact record must be an object, got {type(data).__name__}"
            )

        contact_id = data.get("id")
        if not isinstance(contact_id, str) or not contact_id:
            raise ValueError("Contact record is missing a string 'id'")

        kwargs: dict[str, Any] = {
            attr: data[wire_name]
            for wire_name, attr in FIELD_ATTRS.items()
            if wire_name in data
        }
        kwargs["extra"] = {k: v for k, v in data.items() if k not in KNOWN_FIELDS}
        kwargs["wire_keys"] = tuple(data)
        return cls(**kwargs)

    def _keys_to_write(self) -> list[str]:
        read = self.wire_keys or ()
        keys = list(read)
        for wire_name, attr in FIELD_ATTRS.items():
            if wire_name in read:
                continue
            value = getattr(self, attr)
            if wire_name in REQUIRED_FIELDS:
                # Records read from JSON only gain required keys once set
                wanted = self.wire_keys is None or value not in (None, "")
            else:
                wanted = value is not None
            if wanted:
                keys.append(wire_name)
        keys.extend(k for k in self.extra if k not in read)
        return keys

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the contact to its JSON record.

        A contact read with ``from_dict`` is written back with the keys it
        was read with (explicit nulls included), plus any field set since.
        A contact built in code writes every required field and the
        optional fields that are not None. Unknown fields from ``extra``
        are written back unchanged.

        Returns:
            Dictionary using the camelCase wire names
        """
        record: dict[str, Any] = {}
        for key in self._keys_to_write():
            if key in FIELD_ATTRS:
                value = getattr(self, FIELD_ATTRS[key])
            elif key in self.extra:
                value = self.extra[key]
            else:
                continue
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            record[key] = value
        return record

    @property
    def updated_datetime(self) -> Optional[datetime]:
        """The update timestamp as an aware datetime (None if unparseable)."""
        return parse_timestamp(self.updated_at)

    @property
    def created_datetime(self) -> Optional[datetime]:
        """The creation timestamp as an aware datetime (None if unparseable)."""
        return parse_timestamp(self.created_at)

    def touch(self, now: Optional[datetime] = None) -> None:
        """
        Record a local modification.

        Sets ``updated_at`` to ``now`` (default: current UTC time). Also
        fills ``created_at`` if it was never set.
        """
        stamp = format_timestamp(now or datetime.now(timezone.utc))
        self.updated_at = stamp
        if not self.created_at:
            self.created_at = stamp


def latest_update(people: list[Contact]) -> Optional[datetime]:
    """
    Return the newest ``updated_at`` across a dataset.

    Contacts with missing or unparseable timestamps are ignored.

    Args:
        people: Dataset to inspect

    Returns:
        Newest update time, or None when no contact carries a usable
        timestamp (an empty dataset never wins a comparison)
    """
    stamps = [c.updated_datetime for c in people]
    valid = [s for s in stamps if s is not None]
    return max(valid) if valid else None


def find_duplicate_ids(people: list[Contact]) -> list[str]:
    """Return contact ids that occur more than once, in first-seen order."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for contact in people:
        if contact.id in seen and contact.id not in duplicates:
            duplicates.append(contact.id)
        seen.add(contact.id)
    return duplicates
