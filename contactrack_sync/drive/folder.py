"""
Locator for the dedicated backup folder in Google Drive.

The folder is found by its reserved name and created on first use. Two
processes racing on an empty drive may each create one; later lookups
simply use the first match.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from contactrack_sync.drive.client import DriveAPIError

if TYPE_CHECKING:
    from contactrack_sync.auth.session import SessionManager

# Changing this name orphans every backup created under the old one
FOLDER_NAME = "ContacTrack-Backups"

logger = logging.getLogger(__name__)


class FolderLocator:
    """
    Finds or creates the backup folder.

    Usage:
        locator = FolderLocator(session)
        folder_id = locator.get_or_create_folder()
        if folder_id is None:
            ...  # sync unavailable for this attempt
    """

    def __init__(self, session: SessionManager, folder_name: str = FOLDER_NAME):
        """
        Initialize the locator.

        Args:
            session: Session manager providing the authenticated Drive client
            folder_name: Reserved folder name (default: ContacTrack-Backups)
        """
        self.session = session
        self.folder_name = folder_name

    def lookup(self) -> str | None:
        """
        Find the backup folder without creating it.

        Returns:
            Identifier of the first matching folder, or None if absent

        Raises:
            DriveAPIError: If not signed in or the query fails
        """
        drive = self.session.drive
        if drive is None:
            raise DriveAPIError("Not signed in to Google Drive")

        folders = drive.find_folders(self.folder_name)
        if len(folders) > 1:
            logger.warning(
                f"Found {len(folders)} folders named '{self.folder_name}', "
                "using the first"
            )
        for folder in folders:
            if folder.get("id"):
                return str(folder["id"])
        return None

    def get_or_create_folder(self) -> str | None:
        """
        Return the backup folder id, creating the folder if needed.

        Returns:
            Folder identifier, or None if the query or creation failed
        """
        try:
            folder_id = self.lookup()
            if folder_id:
                logger.debug(f"Using backup folder {folder_id}")
                return folder_id

            drive = self.session.drive
            if drive is None:
                raise DriveAPIError("Not signed in to Google Drive")
            return drive.create_folder(self.folder_name)
        except DriveAPIError as e:
            logger.error(f"Failed to get or create backup folder: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error locating backup folder: {e}")
            return None
