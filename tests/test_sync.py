"""
Unit tests for the sync coordinator.

Covers the last-writer-wins decision between the local dataset and the
newest remote backup, and the failure paths around it.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from contactrack_sync.backup.snapshot import BackupDescriptor
from contactrack_sync.sync.contact import Contact
from contactrack_sync.sync.coordinator import (
    MSG_FETCH_FAILED,
    MSG_LIST_FAILED,
    MSG_SIGN_IN_FAILED,
    MSG_SYNC_ERROR,
    SyncCoordinator,
)
from contactrack_sync.sync.outcome import Resolution, SyncOutcome

REMOTE_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_contact(contact_id, updated_at):
    return Contact(id=contact_id, name=contact_id, updated_at=updated_at)


def make_backup(file_id="newest", modified=REMOTE_TIME):
    return BackupDescriptor(
        id=file_id,
        name=f"contactrack-backup-{file_id}.json",
        last_modified=modified,
    )


@pytest.fixture
def session():
    session = MagicMock()
    session.get_sign_in_status.return_value = True
    return session


@pytest.fixture
def remote_people():
    return [make_contact("remote", "2024-01-10T00:00:00.000Z")]


@pytest.fixture
def repository(remote_people):
    repository = MagicMock()
    repository.query_backups.return_value = [
        make_backup(),
        make_backup("older", datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ]
    repository.download_backup.return_value = remote_people
    repository.upload_backup.return_value = SyncOutcome(
        succeeded=True, message="Backup completed (1 contacts)", file_id="f", count=1
    )
    repository.restore_contacts.return_value = SyncOutcome(
        succeeded=True, message="Restore completed (1 contacts)", count=1
    )
    return repository


@pytest.fixture
def coordinator(session, repository):
    return SyncCoordinator(session, repository)


class TestNoRemoteBackup:
    """First sync on a fresh account."""

    def test_uploads_local(self, coordinator, repository):
        """Without backups the local dataset is uploaded."""
        repository.query_backups.return_value = []
        people = [make_contact("a", "2024-01-01T00:00:00Z")]

        outcome = coordinator.sync_with_local(people)

        assert outcome.succeeded is True
        assert outcome.resolution is None
        repository.upload_backup.assert_called_once_with(people)
        repository.download_backup.assert_not_called()

    def test_uploads_empty_local(self, coordinator, repository):
        """Even an empty dataset seeds the first backup."""
        repository.query_backups.return_value = []

        coordinator.sync_with_local([])

        repository.upload_backup.assert_called_once_with([])


class TestLastWriterWins:
    """Comparison between local and remote timestamps."""

    def test_local_newer_uploads(self, coordinator, repository):
        """A strictly newer local dataset is uploaded."""
        people = [
            make_contact("a", "2024-01-01T00:00:00Z"),
            make_contact("b", "2024-01-15T12:00:01Z"),
        ]

        outcome = coordinator.sync_with_local(people)

        assert outcome.succeeded is True
        assert outcome.resolution is Resolution.KEPT_LOCAL
        repository.upload_backup.assert_called_once_with(people)
        repository.restore_contacts.assert_not_called()

    def test_remote_newer_restores(self, coordinator, repository, remote_people):
        """An older local dataset is replaced by the newest backup."""
        people = [make_contact("a", "2024-01-14T00:00:00Z")]

        outcome = coordinator.sync_with_local(people)

        assert outcome.resolution is Resolution.KEPT_REMOTE
        repository.restore_contacts.assert_called_once_with(remote_people)
        repository.upload_backup.assert_not_called()

    def test_tie_goes_to_remote(self, coordinator, repository, remote_people):
        """Equal timestamps restore the remote snapshot."""
        people = [make_contact("a", "2024-01-15T12:00:00.000Z")]

        outcome = coordinator.sync_with_local(people)

        assert outcome.resolution is Resolution.KEPT_REMOTE
        repository.restore_contacts.assert_called_once_with(remote_people)

    def test_empty_local_takes_remote(self, coordinator, repository, remote_people):
        """A local side without records never wins."""
        outcome = coordinator.sync_with_local([])

        assert outcome.resolution is Resolution.KEPT_REMOTE
        repository.restore_contacts.assert_called_once_with(remote_people)

    def test_unparseable_local_takes_remote(self, coordinator, repository):
        """Local records without usable timestamps never win."""
        coordinator.sync_with_local([make_contact("a", "not a date")])

        repository.restore_contacts.assert_called_once()
        repository.upload_backup.assert_not_called()

    def test_only_newest_backup_downloaded(self, coordinator, repository):
        """The first listed backup is the one compared and restored."""
        coordinator.sync_with_local([])

        repository.download_backup.assert_called_once_with("newest")

    def test_remote_time_is_backup_modified_time(self, coordinator, repository):
        """Timestamps inside the snapshot are not used for the comparison."""
        repository.download_backup.return_value = [
            make_contact("remote", "2030-01-01T00:00:00Z")
        ]
        people = [make_contact("a", "2024-02-01T00:00:00Z")]

        outcome = coordinator.sync_with_local(people)

        assert outcome.resolution is Resolution.KEPT_LOCAL

    def test_failed_upload_keeps_resolution(self, coordinator, repository):
        """The kept side is reported even when the upload fails."""
        failed = SyncOutcome.failure("Backup upload failed")
        repository.upload_backup.return_value = failed

        outcome = coordinator.sync_with_local(
            [make_contact("a", "2024-06-01T00:00:00Z")]
        )

        assert outcome.succeeded is False
        assert outcome.message == "Backup upload failed"
        assert outcome.resolution is Resolution.KEPT_LOCAL


class TestSyncFailures:
    """Failure paths that must not touch either side."""

    def test_sign_in_failure(self, coordinator, session, repository):
        """Without a token nothing is listed or uploaded."""
        session.get_sign_in_status.return_value = False
        session.sign_in.return_value = False

        outcome = coordinator.sync_with_local([])

        assert outcome.succeeded is False
        assert outcome.message == MSG_SIGN_IN_FAILED
        repository.query_backups.assert_not_called()

    def test_signs_in_before_listing(self, coordinator, session, repository):
        """A signed-out session is signed in first."""
        session.get_sign_in_status.return_value = False
        session.sign_in.return_value = True

        coordinator.sync_with_local([])

        session.sign_in.assert_called_once()
        repository.query_backups.assert_called_once()

    def test_listing_failure_does_not_upload(self, coordinator, repository):
        """A failed listing is not mistaken for an empty folder."""
        repository.query_backups.return_value = None

        people = [make_contact("a", "2024-01-01T00:00:00Z")]
        outcome = coordinator.sync_with_local(people)

        assert outcome.succeeded is False
        assert outcome.message == MSG_LIST_FAILED
        repository.upload_backup.assert_not_called()

    def test_download_failure(self, coordinator, repository):
        """An unreadable newest backup leaves local data untouched."""
        repository.download_backup.return_value = None

        outcome = coordinator.sync_with_local([])

        assert outcome.succeeded is False
        assert outcome.message == MSG_FETCH_FAILED
        repository.restore_contacts.assert_not_called()
        repository.upload_backup.assert_not_called()

    def test_unexpected_error(self, coordinator, repository):
        """Unexpected errors become the generic sync failure."""
        repository.query_backups.side_effect = RuntimeError("bug")

        outcome = coordinator.sync_with_local([])

        assert outcome.succeeded is False
        assert outcome.message == MSG_SYNC_ERROR
