"""Operator token authentication for the rejection and booking views."""

from __future__ import annotations

import secrets
from threading import RLock
from typing import Optional

from catering_booking.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class OperatorTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidOperatorTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


class OperatorAuthService:
    """Exchanges the configured admin token for a bearer session.

    Only the latest session is valid; a new login replaces the previous one.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._session_token: Optional[str] = None
        self._lock = RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def login(self, provided_admin_token: str) -> str:
        if not self._settings.admin_token:
            raise OperatorTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        if not secrets.compare_digest(provided_admin_token, self._settings.admin_token):
            raise InvalidOperatorTokenError("Invalid admin token")
        session_token = secrets.token_urlsafe(32)
        with self._lock:
            self._session_token = session_token
        return session_token

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        with self._lock:
            current = self._session_token
        if current is None or not secrets.compare_digest(bearer_token, current):
            raise InvalidOperatorTokenError("Invalid bearer token. Login first.")
