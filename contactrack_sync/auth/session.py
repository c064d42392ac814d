"""
OAuth2 session management for Google Drive backups.

Provides the authentication lifecycle used by the sync engine:
- Loading client credentials (initialize)
- Interactive consent with an optional caller-supplied timeout (sign in)
- Token revocation and local cleanup (sign out)
- A side-effect free sign-in status check

Every public method reports failure through its return value; network and
OAuth errors are logged, never raised to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from contactrack_sync.auth.credentials import ClientCredentials, CredentialStore
from contactrack_sync.drive.client import DriveClient

# Only files created by this application are visible to it
SCOPES = ["https://www.googleapis.com/auth/drive.file"]

REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# Default auth timeout for network requests (in seconds)
DEFAULT_AUTH_TIMEOUT = 10

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when authentication fails or credentials are invalid."""

    pass


@dataclass
class Session:
    """
    In-memory authentication state.

    Attributes:
        authenticated: An access token is currently held
        client_ready: Client credentials have been loaded
    """

    authenticated: bool = False
    client_ready: bool = False


class SessionManager:
    """
    Owns the Google sign-in lifecycle for one application instance.

    The application shell creates one manager and hands it to the sync
    components; nothing here is global.

    Usage:
        manager = SessionManager(CredentialStore(config=config))

        if manager.sign_in():
            drive = manager.drive  # authenticated DriveClient

        manager.sign_out()
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        token_path: Path | None = None,
        consent_timeout: int | None = None,
        auth_timeout: int = DEFAULT_AUTH_TIMEOUT,
        drive_options: dict[str, Any] | None = None,
    ):
        """
        Initialize the session manager.

        Args:
            credential_store: Source of the OAuth client credentials
            token_path: Optional token cache file; None disables caching
            consent_timeout: Seconds to wait for the consent redirect.
                             None waits indefinitely.
            auth_timeout: Timeout in seconds for revocation requests
            drive_options: Extra keyword arguments for DriveClient
        """
        self.credential_store = credential_store
        self.token_path = Path(token_path) if token_path else None
        self.consent_timeout = consent_timeout
        self.auth_timeout = auth_timeout
        self.drive_options = drive_options or {}

        self._session = Session()
        self._client: ClientCredentials | None = None
        self._credentials: Credentials | None = None
        self._drive: DriveClient | None = None

    @property
    def session(self) -> Session:
        """Snapshot of the current session state."""
        return replace(self._session)

    @property
    def drive(self) -> DriveClient | None:
        """Authenticated Drive client, or None while signed out."""
        if not self._session.authenticated:
            return None
        return self._drive

    def initialize(self) -> bool:
        """
        Load client credentials.

        Returns True immediately if already initialized.

        Returns:
            True if the client is ready, False if credentials are missing
        """
        if self._session.client_ready:
            return True

        try:
            client = self.credential_store.load()
        except Exception as e:
            logger.error(f"Google API initialization failed: {e}")
            return False

        if client is None:
            return False

        self._client = client
        self._session.client_ready = True
        logger.debug("Google API client initialized")
        return True

    def sign_in(self) -> bool:
        """
        Obtain an access token.

        Uses a cached token when one is available and still usable;
        otherwise runs the interactive consent flow.

        Returns:
            True only if an access token was obtained
        """
        if not self._session.client_ready and not self.initialize():
            return False

        try:
            creds = self._load_cached_token()
            if creds is None:
                creds = self._request_token()
            if not creds.token:
                raise AuthenticationError("no access token was obtained")
            self._activate(creds)
        except AuthenticationError as e:
            logger.error(f"Google Drive sign in failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error during Google Drive sign in: {e}")
            return False

        logger.info("Signed in to Google Drive")
        return True

    def resume(self) -> bool:
        """
        Sign in from the token cache only, never prompting for consent.

        Returns:
            True if a cached token was usable
        """
        if self._session.authenticated:
            return True
        if not self._session.client_ready and not self.initialize():
            return False

        try:
            creds = self._load_cached_token()
            if creds is None or not creds.token:
                return False
            self._activate(creds)
        except Exception as e:
            logger.warning(f"Could not resume Google Drive session: {e}")
            return False

        logger.debug("Resumed Google Drive session from token cache")
        return True

    def sign_out(self) -> None:
        """
        Revoke the current token and clear the session.

        Revocation is best-effort; local state is always cleared.
        """
        token = self._credentials.token if self._credentials else None
        try:
            if token:
                self._revoke_token(token)
        finally:
            self._credentials = None
            self._drive = None
            self._session.authenticated = False
            self._clear_cached_token()
            logger.info("Signed out of Google Drive")

    def get_sign_in_status(self) -> bool:
        """Whether an access token is currently held. Performs no I/O."""
        return self._session.authenticated

    def _activate(self, creds: Credentials) -> None:
        if self._client is None:
            raise AuthenticationError("Google API client is not initialized")
        self._credentials = creds
        self._drive = DriveClient(
            creds, api_key=self._client.api_key, **self.drive_options
        )
        self._session.authenticated = True
        self._save_cached_token(creds)

    def _request_token(self) -> Credentials:
        """
        Run the interactive consent flow.

        Resolves exactly once: with credentials when the consent redirect
        arrives, or with an error on denial or timeout.

        Raises:
            AuthenticationError: If consent fails, is denied, or times out
        """
        if self._client is None:
            raise AuthenticationError("Google API client is not initialized")
        logger.info("Starting Google OAuth consent flow")

        try:
            flow = InstalledAppFlow.from_client_config(
                self._client.to_client_config(), SCOPES
            )
            creds: Credentials = flow.run_local_server(
                port=0,
                prompt="consent",
                timeout_seconds=self.consent_timeout,
            )
        except Exception as e:
            raise AuthenticationError(f"OAuth consent failed: {e}") from e

        if creds is None:
            raise AuthenticationError("OAuth consent returned no credentials")
        return creds

    def _revoke_token(self, token: str) -> None:
        try:
            response = requests.post(
                REVOKE_URL,
                params={"token": token},
                headers={"content-type": "application/x-www-form-urlencoded"},
                timeout=self.auth_timeout,
            )
            if response.status_code == 200:
                logger.debug("Access token revoked")
            else:
                logger.warning(
                    f"Token revocation returned status {response.status_code}"
                )
        except requests.RequestException as e:
            logger.warning(f"Failed to revoke access token: {e}")

    # =========================================================================
    # Token cache
    # =========================================================================

    def _load_cached_token(self) -> Credentials | None:
        """
        Load a usable token from the cache, refreshing it if expired.

        Returns:
            Valid credentials, or None if there is no usable cached token
        """
        if self.token_path is None or not self.token_path.exists():
            return None

        try:
            creds: Credentials = Credentials.from_authorized_user_file(
                str(self.token_path), SCOPES
            )
        except (json.JSONDecodeError, ValueError, OSError) as e:
            logger.warning(f"Invalid token cache {self.token_path}: {e}")
            return None

        if creds.valid:
            logger.debug("Using cached Google token")
            return creds

        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                logger.debug("Refreshed cached Google token")
                return creds
            except RefreshError as e:
                logger.warning(f"Failed to refresh cached token: {e}")

        return None

    def _save_cached_token(self, creds: Credentials) -> None:
        if self.token_path is None:
            return
        try:
            self.token_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            self.token_path.write_text(creds.to_json())
            self.token_path.chmod(0o600)
            logger.debug(f"Saved token cache: {self.token_path}")
        except OSError as e:
            logger.warning(f"Could not write token cache {self.token_path}: {e}")

    def _clear_cached_token(self) -> None:
        if self.token_path is None or not self.token_path.exists():
            return
        try:
            self.token_path.unlink()
            logger.debug(f"Removed token cache: {self.token_path}")
        except OSError as e:
            logger.warning(f"Could not remove token cache {self.token_path}: {e}")
