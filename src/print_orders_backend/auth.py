"""
Admin authentication: credential verification and session tokens.

Credential checking and session storage are both behind small protocols so
a stronger scheme can replace the single configured credential pair without
touching the routes that depend on the SessionAuthority.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from .utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)


class CredentialVerifier(Protocol):
    def verify(self, username: str, password: str) -> bool: ...


class SessionStore(Protocol):
    def create_session(self, session_id: str, created_at: datetime, expires_at: datetime) -> None: ...

    def get_session_expiry(self, session_id: str) -> Optional[datetime]: ...


class StaticCredentialVerifier:
    """Accepts exactly one configured username/password pair."""

    def __init__(self, username: str, password: str):
        self._username = username
        self._password = password

    def verify(self, username: str, password: str) -> bool:
        # Evaluate both comparisons so timing does not reveal which one failed
        username_ok = secrets.compare_digest(username.encode(), self._username.encode())
        password_ok = secrets.compare_digest(password.encode(), self._password.encode())
        return username_ok and password_ok


class SessionAuthority:
    """
    Issues and validates opaque admin session tokens.

    Sessions have a fixed lifetime and are never revoked server-side; a
    client "logs out" by discarding its token.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        store: SessionStore,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.verifier = verifier
        self.store = store
        self.ttl = ttl
        self._clock = clock

    def login(self, username: Optional[str], password: Optional[str]) -> Optional[str]:
        """
        Check credentials and open a new session.

        Returns:
            The new session token, or None if the credentials are invalid
        """
        if not self.verifier.verify(username or "", password or ""):
            logger.info("Invalid admin credentials provided")
            return None

        token = secrets.token_urlsafe(32)
        created_at = self._clock()
        self.store.create_session(token, created_at, created_at + self.ttl)
        logger.info("Admin login successful")
        return token

    def verify(self, token: Optional[str]) -> bool:
        """True iff the token names a stored session that has not expired."""
        if not token:
            return False
        expires_at = self.store.get_session_expiry(token)
        if expires_at is None:
            return False
        return self._clock() < expires_at
