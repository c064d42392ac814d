"""
Tests for the backup snapshot format and listing metadata.
"""

import json
from datetime import datetime, timezone

import pytest

from contactrack_sync.backup.snapshot import (
    BACKUP_PREFIX,
    SNAPSHOT_VERSION,
    BackupDescriptor,
    Snapshot,
    build_backup_filename,
    newest_first,
)
from contactrack_sync.sync.contact import Contact

CAPTURED_AT = datetime(2024, 1, 20, 10, 30, tzinfo=timezone.utc)


def make_people():
    return [
        Contact(
            id="a",
            name="Alice",
            relation="friend",
            updated_at="2024-01-01T00:00:00.000Z",
        ),
        Contact(
            id="b",
            name="鈴木",
            relation="同僚",
            updated_at="2024-01-02T00:00:00.000Z",
        ),
    ]


class TestBackupFilename:
    """Tests for build_backup_filename."""

    def test_filename_format(self):
        """Names carry the date and the capture time in milliseconds."""
        name = build_backup_filename(CAPTURED_AT)
        millis = int(CAPTURED_AT.timestamp() * 1000)
        assert name == f"contactrack-backup-2024-01-20-{millis}.json"

    def test_filename_uses_prefix(self):
        """Every backup name starts with the listing prefix."""
        assert build_backup_filename().startswith(BACKUP_PREFIX)


class TestSnapshotSerialization:
    """Tests for Snapshot.to_json."""

    def test_document_fields(self):
        """The document has version, timestamp, people and totalCount."""
        snapshot = Snapshot.capture(make_people(), CAPTURED_AT)
        data = json.loads(snapshot.to_json())

        assert data["version"] == SNAPSHOT_VERSION == "1.0"
        assert data["timestamp"] == "2024-01-20T10:30:00.000Z"
        assert data["totalCount"] == 2
        assert [p["id"] for p in data["people"]] == ["a", "b"]

    def test_non_ascii_preserved(self):
        """Non-ASCII names are written as-is, not escaped."""
        text = Snapshot.capture(make_people(), CAPTURED_AT).to_json()
        assert "鈴木" in text
        assert "\\u" not in text

    def test_capture_copies_dataset(self):
        """Later changes to the caller's list do not affect the snapshot."""
        people = make_people()
        snapshot = Snapshot.capture(people, CAPTURED_AT)
        people.append(Contact(id="c"))
        assert snapshot.total_count == 2


class TestSnapshotParsing:
    """Tests for Snapshot.from_json."""

    def test_parse_valid_document(self):
        """A well-formed document parses back to the same dataset."""
        original = Snapshot.capture(make_people(), CAPTURED_AT)
        parsed = Snapshot.from_json(original.to_json().encode("utf-8"))

        assert parsed is not None
        assert parsed.people == original.people
        assert parsed.timestamp == original.timestamp

    def test_invalid_json(self):
        """Bodies that are not JSON are rejected."""
        assert Snapshot.from_json("{not json") is None

    def test_missing_people(self):
        """Documents without a people array are rejected."""
        assert Snapshot.from_json(json.dumps({"version": "1.0"})) is None
        assert Snapshot.from_json(json.dumps({"people": {"a": 1}})) is None

    def test_non_object_document(self):
        """Top-level arrays are not snapshots."""
        assert Snapshot.from_json("[]") is None

    def test_minimal_document(self):
        """Only the people array is required."""
        parsed = Snapshot.from_json('{"people": []}')
        assert parsed is not None
        assert parsed.people == []

    @pytest.mark.parametrize(
        "entry", [{"name": "no id"}, {"id": 42, "name": "numeric id"}, "junk"]
    )
    def test_unreadable_entry_rejects_document(self, entry):
        """One unreadable entry rejects the whole document."""
        body = json.dumps({"people": [{"id": "a"}, entry]})
        assert Snapshot.from_json(body) is None

    def test_unexpected_field_types_kept(self):
        """Odd field values are not an error and are not altered."""
        body = json.dumps({"people": [{"id": "1", "tags": 5, "contactInfo": 7}]})
        parsed = Snapshot.from_json(body)
        assert parsed is not None
        assert parsed.people[0].to_dict() == {
            "id": "1",
            "tags": 5,
            "contactInfo": 7,
        }


class TestSnapshotRoundTrip:
    """A captured dataset reads back unchanged."""

    def test_full_records_round_trip(self):
        """Records with optional, null and unknown fields survive unchanged."""
        people = [
            {
                "id": "p-1",
                "name": "山田 太郎",
                "relation": "university classmate",
                "tags": "vip",
                "contactInfo": {"email": "taro@example.com"},
                "updatedAt": "2024-01-15T12:30:00.000Z",
            },
            {
                "id": "p-2",
                "lastName": "Smith",
                "firstName": "Ann",
                "name": "Ann Smith",
                "relation": "work",
                "createdAt": "2024-01-01T00:00:00.000Z",
                "updatedAt": "2024-01-02T00:00:00.000Z",
                "age": 31,
                "grade": 0,
                "meetDate": "2023-04-01",
                "favoriteColor": "green",
            },
            {"id": "p-3", "name": "Bob", "relation": "friend", "memo": None},
        ]
        contacts = [Contact.from_dict(p) for p in people]

        body = Snapshot.capture(contacts, CAPTURED_AT).to_json().encode("utf-8")
        parsed = Snapshot.from_json(body)

        assert parsed is not None
        assert [p.to_dict() for p in parsed.people] == people
        assert json.loads(body)["people"] == people

    def test_empty_dataset_round_trip(self):
        """An empty dataset is a valid snapshot with totalCount 0."""
        body = Snapshot.capture([], CAPTURED_AT).to_json()
        parsed = Snapshot.from_json(body)

        assert json.loads(body)["totalCount"] == 0
        assert parsed is not None
        assert parsed.people == []


class TestBackupDescriptor:
    """Tests for BackupDescriptor and newest_first."""

    def test_from_api(self):
        """Drive file resources become descriptors."""
        descriptor = BackupDescriptor.from_api(
            {
                "id": "f1",
                "name": "contactrack-backup-2024-01-20-1.json",
                "modifiedTime": "2024-01-20T10:30:00.000Z",
                "size": "2048",
            }
        )
        assert descriptor == BackupDescriptor(
            id="f1",
            name="contactrack-backup-2024-01-20-1.json",
            last_modified=CAPTURED_AT,
            size=2048,
        )

    def test_from_api_without_size(self):
        """Size is optional."""
        descriptor = BackupDescriptor.from_api(
            {"id": "f1", "name": "x", "modifiedTime": "2024-01-20T10:30:00Z"}
        )
        assert descriptor is not None
        assert descriptor.size is None

    def test_from_api_requires_id_and_time(self):
        """Resources without an id or modifiedTime are unusable."""
        assert BackupDescriptor.from_api({"name": "x"}) is None
        assert BackupDescriptor.from_api({"id": "f1", "modifiedTime": "bad"}) is None

    def test_newest_first(self):
        """Descriptors sort by modification time, newest first."""
        older = BackupDescriptor("1", "b", datetime(2024, 1, 1, tzinfo=timezone.utc))
        newer = BackupDescriptor("2", "a", datetime(2024, 2, 1, tzinfo=timezone.utc))
        assert newest_first([older, newer]) == [newer, older]

    def test_newest_first_ties_broken_by_name(self):
        """Equal times fall back to name, descending."""
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        first = BackupDescriptor("1", "contactrack-backup-a", moment)
        second = BackupDescriptor("2", "contactrack-backup-b", moment)
        assert newest_first([first, second]) == [second, first]
