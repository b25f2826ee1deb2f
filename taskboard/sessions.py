"""
Session token issuing, resolution and revocation.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Callable, Optional

from taskboard.db import TaskStore
from taskboard.errors import DuplicateToken, NotFound, Unauthorized
from taskboard.models import MAX_TOKEN_LENGTH, Session

logger = logging.getLogger(__name__)

# 48 random bytes encode to exactly 64 URL-safe base64 characters.
TOKEN_BYTES = 48
TOKEN_LENGTH = MAX_TOKEN_LENGTH
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{%d}$" % TOKEN_LENGTH)


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def is_well_formed(token: object) -> bool:
    return isinstance(token, str) and bool(_TOKEN_PATTERN.match(token))


class SessionManager:
    """
    Issues opaque bearer tokens and maps them back to user ids.

    Expiry is absolute: a session older than ``ttl_seconds`` (counted from
    creation) is rejected and deleted on the next lookup. ``ttl_seconds=None``
    keeps sessions until logout.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[], str] = generate_token,
    ):
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token_factory = token_factory

    def issue(self, user_id: int) -> Session:
        """Create a session for ``user_id``; retries once on a token collision."""
        created_at = self._clock()
        try:
            return self.store.create_session(
                user_id, self._token_factory(), created_at
            )
        except DuplicateToken:
            logger.warning("Session token collision for user %s, retrying", user_id)
            return self.store.create_session(
                user_id, self._token_factory(), created_at
            )

    def is_expired(self, session: Session) -> bool:
        if self.ttl_seconds is None:
            return False
        return session.age(self._clock()) > self.ttl_seconds

    def lookup(self, token: Optional[str]) -> Session:
        if not is_well_formed(token):
            raise Unauthorized("Malformed or missing session token")
        try:
            session = self.store.find_session(token)
        except NotFound:
            raise Unauthorized("Unknown session token") from None
        if self.is_expired(session):
            logger.info("Session for user %s expired", session.user_id)
            try:
                self.store.delete_session(token)
            except NotFound:
                pass  # removed concurrently by a sweep or logout
            raise Unauthorized("Session expired")
        return session

    def resolve(self, token: Optional[str]) -> int:
        """Return the user id bound to ``token`` or raise ``Unauthorized``."""
        return self.lookup(token).user_id

    def revoke(self, token: str) -> None:
        self.store.delete_session(token)
        logger.info("Session revoked")

    def sweep_expired(self) -> int:
        """Delete every session past its TTL. Returns the number removed."""
        if self.ttl_seconds is None:
            return 0
        cutoff = self._clock() - self.ttl_seconds
        removed = self.store.delete_sessions_created_before(cutoff)
        if removed:
            logger.info("Swept %d expired sessions", removed)
        return removed
