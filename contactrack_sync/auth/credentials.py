"""
OAuth client credential lookup.

Collects the Google OAuth client id and secret (and an optional API key)
from, in priority order: explicit values, environment variables, the YAML
configuration, and a client secrets file downloaded from Google Cloud
Console.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from contactrack_sync.utils.paths import CLIENT_SECRETS_FILE_NAME, resolve_config_dir

# Environment variable names
ENV_CLIENT_ID = "GOOGLE_CLIENT_ID"
ENV_CLIENT_SECRET = "GOOGLE_CLIENT_SECRET"
ENV_API_KEY = "GOOGLE_API_KEY"

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientCredentials:
    """OAuth client identity used to request access tokens."""

    client_id: str
    client_secret: str
    api_key: str | None = None

    def to_client_config(self) -> dict[str, Any]:
        """Render as an installed-app client config for google_auth_oauthlib."""
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": ["http://localhost"],
            }
        }


class CredentialStore:
    """
    Resolves the OAuth client credentials at startup.

    Usage:
        store = CredentialStore(config=config)
        creds = store.load()
        if creds is None:
            ...  # not configured
    """

    def __init__(
        self,
        config_dir: Path | str | None = None,
        config: dict[str, Any] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_key: str | None = None,
    ):
        """
        Initialize the credential store.

        Args:
            config_dir: Directory holding credentials.json
            config: Loaded YAML configuration (client_id, client_secret, api_key)
            client_id: Explicit OAuth client id (highest priority)
            client_secret: Explicit OAuth client secret (highest priority)
            api_key: Explicit API key (highest priority)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config = config or {}
        self._explicit = {
            "client_id": client_id,
            "client_secret": client_secret,
            "api_key": api_key,
        }

    @property
    def secrets_path(self) -> Path:
        """Path to the Google client secrets file."""
        return self.config_dir / CLIENT_SECRETS_FILE_NAME

    def _load_secrets_file(self) -> dict[str, str]:
        """
        Read client id and secret from credentials.json.

        Returns:
            Mapping with any of client_id / client_secret found, or an empty
            dict if the file is absent or unreadable
        """
        if not self.secrets_path.exists():
            return {}

        try:
            data = json.loads(self.secrets_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Invalid client secrets file {self.secrets_path}: {e}")
            return {}

        if not isinstance(data, dict):
            return {}
        section = data.get("installed") or data.get("web") or {}
        return {
            key: section[key]
            for key in ("client_id", "client_secret")
            if isinstance(section.get(key), str) and section[key]
        }

    def _resolve(self, key: str, env_var: str, secrets: dict[str, str]) -> str | None:
        candidates = [
            self._explicit.get(key),
            os.environ.get(env_var),
            self.config.get(key),
            secrets.get(key),
        ]
        for value in candidates:
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    def load(self) -> ClientCredentials | None:
        """
        Resolve the client credentials.

        Returns:
            ClientCredentials, or None if the client id or secret is missing
        """
        secrets = self._load_secrets_file()
        client_id = self._resolve("client_id", ENV_CLIENT_ID, secrets)
        client_secret = self._resolve("client_secret", ENV_CLIENT_SECRET, secrets)
        api_key = self._resolve("api_key", ENV_API_KEY, {})

        if not client_id or not client_secret:
            missing = [
                name
                for name, value in (
                    ("client_id", client_id),
                    ("client_secret", client_secret),
                )
                if not value
            ]
            logger.error(
                f"Google API credentials not found (missing: {', '.join(missing)}). "
                f"Set {ENV_CLIENT_ID}/{ENV_CLIENT_SECRET} or add {self.secrets_path}"
            )
            return None

        return ClientCredentials(
            client_id=client_id, client_secret=client_secret, api_key=api_key
        )
