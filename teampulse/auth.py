"""
Session authentication for the TeamPulse service.

There is a single admin account whose credentials come from configuration.
A successful login creates an opaque session token; request handlers look
the token up explicitly to decide whether a caller is authenticated.
"""

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import Settings
from .models import AuthResult, SessionUser

logger = logging.getLogger(__name__)


def authenticate(email: str, password: str, settings: Settings) -> bool:
    """Check a credential pair against the configured admin account."""
    email_ok = secrets.compare_digest(email.encode(), settings.admin_email.encode())
    password_ok = secrets.compare_digest(
        password.encode(), settings.admin_password.encode()
    )
    return email_ok and password_ok


@dataclass
class _Session:
    email: str
    expires_at: float


class SessionRegistry:
    """
    In-memory registry of active session tokens.

    Tokens are random and carry no data themselves; everything about the
    session lives here, so destroying a token logs the user out immediately.
    """

    def __init__(
        self, max_age: int, clock: Callable[[], float] = time.time
    ) -> None:
        self._max_age = max_age
        self._clock = clock
        self._sessions: dict[str, _Session] = {}

    def create(self, email: str) -> str:
        """Start a session for ``email`` and return its token."""
        now = self._clock()
        self._sessions = {
            t: s for t, s in self._sessions.items() if s.expires_at > now
        }
        token = secrets.token_urlsafe(32)
        self._sessions[token] = _Session(email=email, expires_at=now + self._max_age)
        logger.info("Created session for %s", email)
        return token

    def destroy(self, token: str | None) -> None:
        if token and self._sessions.pop(token, None) is not None:
            logger.info("Destroyed session")

    def lookup(self, token: str | None) -> AuthResult:
        """
        Resolve a session token.

        Args:
            token: The token from the session cookie, if any

        Returns:
            An AuthResult; unknown and expired tokens are unauthenticated
        """
        if not token:
            return AuthResult(authenticated=False)

        session = self._sessions.get(token)
        if session is None:
            return AuthResult(authenticated=False)

        if session.expires_at <= self._clock():
            del self._sessions[token]
            logger.info("Session for %s expired", session.email)
            return AuthResult(authenticated=False)

        return AuthResult(authenticated=True, user=SessionUser(email=session.email))
