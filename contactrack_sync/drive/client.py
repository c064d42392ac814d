"""
Google Drive API wrapper for backup storage.

Provides a thin interface to the Drive v3 API for:
- Querying and creating the backup folder
- Listing backup files in a folder, newest first
- Uploading a file as a single multipart request with a base64 body
- Downloading a file's raw content
- Exponential backoff retry logic for rate limits and server errors
"""

import base64
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Endpoint for multipart uploads (not covered by the discovery client)
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

# Multipart boundary; cannot occur inside a base64 payload
MULTIPART_BOUNDARY = "contactrack_backup_boundary"

# Fields requested for backup listings
FILE_FIELDS = "id,name,modifiedTime,size"

DEFAULT_PAGE_SIZE = 100

# Retry configuration defaults
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 60.0  # seconds

# Timeout for raw upload requests (seconds)
DEFAULT_UPLOAD_TIMEOUT = 60

logger = logging.getLogger(__name__)


class DriveAPIError(Exception):
    """Raised when a Drive API operation fails."""

    pass


class RateLimitError(DriveAPIError):
    """Raised when rate limit is exceeded and retries are exhausted."""

    pass


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_body(
    metadata: dict[str, Any],
    content: bytes,
    content_type: str = "application/json",
    boundary: str = MULTIPART_BOUNDARY,
) -> str:
    """
    Build a multipart/related upload body.

    The first part carries the JSON file metadata, the second the file
    content encoded as base64.

    Args:
        metadata: Drive file resource (name, parents, description, ...)
        content: Raw file bytes
        content_type: MIME type of the file content
        boundary: Part delimiter

    Returns:
        CRLF-delimited request body
    """
    encoded = base64.b64encode(content).decode("ascii")
    return "\r\n".join(
        [
            f"--{boundary}",
            "Content-Type: application/json; charset=UTF-8",
            "",
            json.dumps(metadata, ensure_ascii=False),
            f"--{boundary}",
            f"Content-Type: {content_type}",
            "Content-Transfer-Encoding: base64",
            "",
            encoded,
            f"--{boundary}--",
        ]
    )


class DriveClient:
    """
    Google Drive API wrapper for backup file operations.

    Attributes:
        credentials: Google OAuth2 credentials with a Drive scope
        api_key: Optional developer key passed to the discovery client

    Usage:
        drive = DriveClient(credentials)

        folders = drive.find_folders("ContacTrack-Backups")
        folder_id = drive.create_folder("ContacTrack-Backups")

        files = drive.list_files(folder_id, "contactrack-backup-")
        created = drive.upload_multipart({"name": "x.json"}, b"{}")
        body = drive.download(created["id"])
    """

    def __init__(
        self,
        credentials: Credentials,
        api_key: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        upload_timeout: int = DEFAULT_UPLOAD_TIMEOUT,
    ):
        """
        Initialize the Drive API wrapper.

        Args:
            credentials: Valid Google OAuth2 credentials with drive.file scope
            api_key: Optional API key used as the discovery developer key
            page_size: Number of files per page when listing (default 100)
            max_retries: Maximum attempts for failed API calls (default 5)
            initial_retry_delay: Initial backoff delay in seconds (default 1.0)
            max_retry_delay: Maximum backoff delay in seconds (default 60.0)
            upload_timeout: Timeout in seconds for multipart uploads
        """
        self.credentials = credentials
        self.api_key = api_key
        self.page_size = min(page_size, 1000)  # API max is 1000
        self.max_retries = max(1, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.upload_timeout = upload_timeout
        self._service = None
        self._http_session: AuthorizedSession | None = None

    @property
    def service(self) -> Any:
        """
        Get or create the Google Drive service object.

        Raises:
            DriveAPIError: If service cannot be created
        """
        if self._service is None:
            try:
                self._service = build(
                    "drive",
                    "v3",
                    credentials=self.credentials,
                    developerKey=self.api_key,
                    cache_discovery=False,
                )
                logger.debug("Created Drive API service")
            except Exception as e:
                logger.error(f"Failed to create Drive API service: {e}")
                raise DriveAPIError(f"Failed to create API service: {e}") from e
        return self._service

    @property
    def http_session(self) -> AuthorizedSession:
        """Authorized requests session used for raw uploads."""
        if self._http_session is None:
            self._http_session = AuthorizedSession(self.credentials)
        return self._http_session

    def _sleep_before_retry(self, delay: float) -> float:
        time.sleep(delay)
        return min(delay * 2, self.max_retry_delay)

    def _retry_with_backoff(
        self, operation: Callable[[], Any], operation_name: str
    ) -> Any:
        """
        Execute an operation with exponential backoff retry.

        Args:
            operation: Callable to execute
            operation_name: Name for logging purposes

        Returns:
            Result of the operation

        Raises:
            RateLimitError: If retries are exhausted due to rate limits
            DriveAPIError: For other API errors
        """
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            try:
                return operation()

            except HttpError as e:
                status_code = e.resp.status

                # Rate limit or quota exceeded - retry with backoff
                if status_code in (429, 403):
                    if attempt < self.max_retries - 1:
                        logger.warning(
                            f"{operation_name} rate limited, retrying in "
                            f"{delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                        )
                        delay = self._sleep_before_retry(delay)
                        continue
                    raise RateLimitError(
                        f"Rate limit exceeded for {operation_name} "
                        f"after {self.max_retries} retries"
                    ) from e

                # Server error - retry with backoff
                if status_code >= 500 and attempt < self.max_retries - 1:
                    logger.warning(
                        f"{operation_name} server error ({status_code}), "
                        f"retrying in {delay:.1f}s"
                    )
                    delay = self._sleep_before_retry(delay)
                    continue

                logger.error(f"{operation_name} failed with status {status_code}: {e}")
                raise DriveAPIError(f"{operation_name} failed: {e}") from e

            except DriveAPIError:
                raise

            except Exception as e:
                logger.error(f"{operation_name} failed: {e}")
                raise DriveAPIError(f"{operation_name} failed: {e}") from e

        raise DriveAPIError(f"{operation_name} failed after all retries")

    def find_folders(self, name: str) -> list[dict[str, Any]]:
        """
        Find non-trashed folders with an exact name.

        Args:
            name: Folder name to search for

        Returns:
            Matching folder resources ({"id", "name"}) in API order

        Raises:
            DriveAPIError: If the query fails
        """
        query = (
            f"name='{escape_query_value(name)}' and mimeType='{FOLDER_MIME_TYPE}' "
            "and trashed=false"
        )
        logger.debug(f"Searching for folder: {name}")

        def execute_find() -> Any:
            return (
                self.service.files()
                .list(q=query, spaces="drive", fields="files(id,name)")
                .execute()
            )

        response = self._retry_with_backoff(execute_find, "find_folders")
        folders: list[dict[str, Any]] = response.get("files", [])
        return folders

    def create_folder(self, name: str) -> str:
        """
        Create a folder in the drive root.

        Args:
            name: Folder name

        Returns:
            Identifier of the new folder

        Raises:
            DriveAPIError: If creation fails or the response has no id
        """
        body = {"name": name, "mimeType": FOLDER_MIME_TYPE}

        def execute_create() -> Any:
            return self.service.files().create(body=body, fields="id").execute()

        response = self._retry_with_backoff(execute_create, "create_folder")
        folder_id = response.get("id")
        if not folder_id:
            raise DriveAPIError("create_folder returned no folder id")

        logger.info(f"Created folder '{name}' ({folder_id})")
        return str(folder_id)

    def list_files(self, parent_id: str, name_prefix: str) -> list[dict[str, Any]]:
        """
        List non-trashed files in a folder whose names contain a prefix.

        Follows pagination until every page has been read.

        Args:
            parent_id: Folder identifier
            name_prefix: Text that file names must contain

        Returns:
            File resources with id, name, modifiedTime and size

        Raises:
            DriveAPIError: If listing fails
        """
        query = (
            f"'{escape_query_value(parent_id)}' in parents and "
            f"name contains '{escape_query_value(name_prefix)}' and trashed=false"
        )
        files: list[dict[str, Any]] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "q": query,
                "orderBy": "modifiedTime desc",
                "pageSize": self.page_size,
                "fields": f"nextPageToken, files({FILE_FIELDS})",
            }
            if page_token:
                params["pageToken"] = page_token

            def execute_list(p: dict[str, Any] = params) -> Any:
                return self.service.files().list(**p).execute()

            response = self._retry_with_backoff(execute_list, "list_files")
            files.extend(response.get("files", []))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(files)} files in folder {parent_id}")
        return files

    def upload_multipart(
        self,
        metadata: dict[str, Any],
        content: bytes,
        content_type: str = "application/json",
    ) -> dict[str, Any]:
        """
        Create a file with a single multipart upload request.

        Args:
            metadata: File resource (name, parents, description, ...)
            content: Raw file bytes, sent base64 encoded
            content_type: MIME type of the content

        Returns:
            The created file resource (at least "id")

        Raises:
            DriveAPIError: If the request fails or returns a non-200 status
        """
        body = build_multipart_body(metadata, content, content_type)
        headers = {
            "Content-Type": f'multipart/related; boundary="{MULTIPART_BOUNDARY}"'
        }
        params = {"uploadType": "multipart", "fields": FILE_FIELDS}

        try:
            response = self.http_session.post(
                UPLOAD_URL,
                params=params,
                data=body.encode("utf-8"),
                headers=headers,
                timeout=self.upload_timeout,
            )
        except Exception as e:
            logger.error(f"Multipart upload request failed: {e}")
            raise DriveAPIError(f"upload failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Multipart upload failed with status {response.status_code}: "
                f"{response.text[:500]}"
            )
            raise DriveAPIError(f"upload failed with status {response.status_code}")

        try:
            created: dict[str, Any] = response.json()
        except ValueError as e:
            raise DriveAPIError(f"upload returned an invalid response: {e}") from e

        logger.info(f"Uploaded file '{metadata.get('name')}' ({created.get('id')})")
        return created

    def download(self, file_id: str) -> bytes:
        """
        Fetch the raw content of a file (alt=media).

        Args:
            file_id: File identifier

        Returns:
            File content as bytes

        Raises:
            DriveAPIError: If the download fails
        """

        def execute_get() -> Any:
            return self.service.files().get_media(fileId=file_id).execute()

        content = self._retry_with_backoff(execute_get, f"download({file_id})")
        if isinstance(content, str):
            content = content.encode("utf-8")
        return bytes(content)
