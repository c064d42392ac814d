"""
Remote backup repository for contact snapshots.

Provides functionality to:
- List backups in the Drive backup folder, newest first
- Upload a dataset as a new, never-modified snapshot
- Download and validate a snapshot
- Restore a snapshot over the local dataset (full overwrite)

Failures at any step are logged with their cause and reported to the
caller as a generic SyncOutcome or an empty/None result.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from contactrack_sync.backup.snapshot import (
    BACKUP_PREFIX,
    BackupDescriptor,
    Snapshot,
    build_backup_filename,
    newest_first,
)
from contactrack_sync.drive.client import DriveAPIError
from contactrack_sync.drive.folder import FolderLocator
from contactrack_sync.sync.contact import Contact
from contactrack_sync.sync.outcome import SyncOutcome

if TYPE_CHECKING:
    from contactrack_sync.auth.session import SessionManager
    from contactrack_sync.storage.local_store import LocalStore

# User-facing messages
MSG_SIGN_IN_FAILED = "Could not sign in to Google Drive"
MSG_FOLDER_FAILED = "Could not create the backup folder"
MSG_UPLOAD_FAILED = "Backup upload failed"
MSG_BACKUP_ERROR = "An error occurred during backup"
MSG_READ_FAILED = "Could not read the backup data"
MSG_SAVE_FAILED = "Could not save the restored data locally"
MSG_RESTORE_ERROR = "An error occurred during restore"

logger = logging.getLogger(__name__)


class BackupRepository:
    """
    Lists, uploads and downloads snapshots in the Drive backup folder.

    Attributes:
        session: Session manager providing sign-in and the Drive client
        store: Local store whose dataset is replaced on restore
        locator: Backup folder locator

    Usage:
        repo = BackupRepository(session, store)

        outcome = repo.upload_backup(people)
        backups = repo.list_backups()
        people = repo.download_backup(backups[0].id)
        outcome = repo.restore_from_backup(backups[0].id)
    """

    def __init__(
        self,
        session: SessionManager,
        store: LocalStore,
        locator: Optional[FolderLocator] = None,
    ):
        """
        Initialize the repository.

        Args:
            session: Session manager for the Google account
            store: Local store receiving restored datasets
            locator: Folder locator (default: one for the reserved folder)
        """
        self.session = session
        self.store = store
        self.locator = locator or FolderLocator(session)

    def query_backups(self) -> Optional[list[BackupDescriptor]]:
        """
        List backups, distinguishing "none" from "could not list".

        Returns:
            Descriptors sorted newest first; an empty list when signed out
            or the folder does not exist; None if the listing failed
        """
        drive = self.session.drive
        if drive is None:
            return []

        try:
            folder_id = self.locator.lookup()
            if folder_id is None:
                logger.debug("Backup folder does not exist yet")
                return []

            files = drive.list_files(folder_id, BACKUP_PREFIX)
        except DriveAPIError as e:
            logger.error(f"Failed to list backups: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error listing backups: {e}")
            return None

        descriptors = []
        for file in files:
            descriptor = BackupDescriptor.from_api(file)
            if descriptor is None:
                logger.warning(f"Ignoring backup entry without metadata: {file}")
                continue
            descriptors.append(descriptor)

        return newest_first(descriptors)

    def list_backups(self) -> list[BackupDescriptor]:
        """
        List backups in the backup folder, newest first.

        Returns:
            Descriptors, or an empty list if unavailable
        """
        return self.query_backups() or []

    def upload_backup(self, people: list[Contact]) -> SyncOutcome:
        """
        Upload a dataset as a new snapshot.

        Signs in interactively if needed and creates the backup folder on
        first use.

        Args:
            people: Dataset to back up (read only)

        Returns:
            SyncOutcome with the new file id and record count on success
        """
        try:
            if not self.session.get_sign_in_status() and not self.session.sign_in():
                return SyncOutcome.failure(MSG_SIGN_IN_FAILED)

            folder_id = self.locator.get_or_create_folder()
            if not folder_id:
                return SyncOutcome.failure(MSG_FOLDER_FAILED)

            drive = self.session.drive
            if drive is None:
                return SyncOutcome.failure(MSG_SIGN_IN_FAILED)

            now = datetime.now(timezone.utc)
            snapshot = Snapshot.capture(people, now)
            metadata = {
                "name": build_backup_filename(now),
                "parents": [folder_id],
                "description": (
                    "ContacTrack backup created on "
                    f"{now.astimezone().strftime('%Y-%m-%d %H:%M:%S')}"
                ),
            }

            try:
                created = drive.upload_multipart(
                    metadata, snapshot.to_json().encode("utf-8")
                )
            except DriveAPIError as e:
                logger.error(f"Backup upload failed: {e}")
                return SyncOutcome.failure(MSG_UPLOAD_FAILED)

            count = snapshot.total_count
            logger.info(f"Uploaded backup {metadata['name']} ({count} contacts)")
            return SyncOutcome(
                succeeded=True,
                message=f"Backup completed ({count} contacts)",
                file_id=created.get("id"),
                count=count,
            )
        except Exception as e:
            logger.error(f"Backup failed: {e}")
            return SyncOutcome.failure(MSG_BACKUP_ERROR)

    def download_backup(self, file_id: str) -> Optional[list[Contact]]:
        """
        Download and parse a snapshot.

        Args:
            file_id: Drive file identifier

        Returns:
            The snapshot's contacts, or None if the download failed or the
            body is not a valid snapshot
        """
        drive = self.session.drive
        if drive is None:
            logger.error("Cannot download backup: not signed in")
            return None

        try:
            body = drive.download(file_id)
            snapshot = Snapshot.from_json(body)
        except DriveAPIError as e:
            logger.error(f"Failed to download backup {file_id}: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error downloading backup {file_id}: {e}")
            return None

        if snapshot is None:
            logger.error(f"Backup {file_id} is not a readable snapshot")
            return None
        return snapshot.people

    def restore_contacts(self, people: list[Contact]) -> SyncOutcome:
        """
        Replace the local dataset with already-downloaded contacts.

        Args:
            people: Dataset to store locally

        Returns:
            SyncOutcome with the restored record count
        """
        try:
            if not self.store.save_people(people):
                return SyncOutcome.failure(MSG_SAVE_FAILED)
        except Exception as e:
            logger.error(f"Restore failed: {e}")
            return SyncOutcome.failure(MSG_RESTORE_ERROR)

        count = len(people)
        logger.info(f"Restored {count} contacts into local storage")
        return SyncOutcome(
            succeeded=True,
            message=f"Restore completed ({count} contacts)",
            count=count,
        )

    def restore_from_backup(self, file_id: str) -> SyncOutcome:
        """
        Download a snapshot and replace the local dataset with it.

        The local dataset is left untouched if the download fails.

        Args:
            file_id: Drive file identifier

        Returns:
            SyncOutcome with the restored record count
        """
        people = self.download_backup(file_id)
        if people is None:
            return SyncOutcome.failure(MSG_READ_FAILED)
        return self.restore_contacts(people)
