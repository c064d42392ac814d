"""
Sync coordinator: last-writer-wins between the local dataset and Drive.

The whole dataset is the unit of conflict. The local side is dated by the
newest ``updatedAt`` among its records, the remote side by the newest
backup's Drive ``modifiedTime``. Local wins only when strictly newer; on a
tie, or when the local side has no usable timestamp, the remote snapshot
is restored.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from contactrack_sync.sync.contact import Contact, latest_update
from contactrack_sync.sync.outcome import Resolution, SyncOutcome

if TYPE_CHECKING:
    from contactrack_sync.auth.session import SessionManager
    from contactrack_sync.backup.repository import BackupRepository

MSG_SIGN_IN_FAILED = "Could not sign in to Google Drive"
MSG_LIST_FAILED = "Could not fetch remote backups"
MSG_FETCH_FAILED = "Could not fetch remote data"
MSG_SYNC_ERROR = "An error occurred during sync"

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """
    Reconciles the local dataset with the newest remote backup.

    Usage:
        coordinator = SyncCoordinator(session, repository)
        outcome = coordinator.sync_with_local(store.load_people())
        if outcome.resolution is Resolution.KEPT_REMOTE:
            ...  # local dataset was replaced, reload it
    """

    def __init__(self, session: SessionManager, repository: BackupRepository):
        self.session = session
        self.repository = repository

    def sync_with_local(self, people: list[Contact]) -> SyncOutcome:
        """
        Synchronize the local dataset with the remote backups.

        - No remote backup yet: upload the local dataset.
        - Local strictly newer than the newest backup: upload it.
        - Otherwise: restore the newest backup over local data.

        Args:
            people: Current local dataset (read only)

        Returns:
            SyncOutcome of the upload or restore, tagged with the kept side
            when a comparison took place
        """
        try:
            if not self.session.get_sign_in_status() and not self.session.sign_in():
                return SyncOutcome.failure(MSG_SIGN_IN_FAILED)

            backups = self.repository.query_backups()
            if backups is None:
                return SyncOutcome.failure(MSG_LIST_FAILED)

            if not backups:
                logger.info("No remote backups found, uploading local data")
                return self.repository.upload_backup(people)

            newest = backups[0]
            remote_people = self.repository.download_backup(newest.id)
            if remote_people is None:
                return SyncOutcome.failure(MSG_FETCH_FAILED)

            local_time = latest_update(people)
            remote_time = newest.last_modified
            logger.debug(
                f"Comparing local {local_time} with remote {remote_time} "
                f"({newest.name})"
            )

            if local_time is not None and local_time > remote_time:
                logger.info("Local data is newer, uploading")
                outcome = self.repository.upload_backup(people)
                return outcome.with_resolution(Resolution.KEPT_LOCAL)

            logger.info("Remote data is newer or equal, restoring")
            outcome = self.repository.restore_contacts(remote_people)
            return outcome.with_resolution(Resolution.KEPT_REMOTE)

        except Exception as e:
            logger.error(f"Sync failed: {e}")
            return SyncOutcome.failure(MSG_SYNC_ERROR)
