"""
contactrack_sync.drive - Google Drive access module

Drive v3 API wrapper and the backup folder locator.
"""

from contactrack_sync.drive.client import (
    FOLDER_MIME_TYPE,
    DriveAPIError,
    DriveClient,
    RateLimitError,
    build_multipart_body,
)
from contactrack_sync.drive.folder import FOLDER_NAME, FolderLocator

__all__ = [
    "DriveClient",
    "DriveAPIError",
    "RateLimitError",
    "FolderLocator",
    "FOLDER_NAME",
    "FOLDER_MIME_TYPE",
    "build_multipart_body",
]
