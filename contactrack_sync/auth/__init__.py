"""
contactrack_sync.auth - Authentication module

OAuth client credential lookup and the Google sign-in session.
"""

from contactrack_sync.auth.credentials import ClientCredentials, CredentialStore
from contactrack_sync.auth.session import (
    SCOPES,
    AuthenticationError,
    Session,
    SessionManager,
)

__all__ = [
    "AuthenticationError",
    "ClientCredentials",
    "CredentialStore",
    "SCOPES",
    "Session",
    "SessionManager",
]
