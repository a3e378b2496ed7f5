"""Owner of the session table.

Pattern: Lazily-Expiring Session Table
---------------------------------------
Every read path checks liveness first.  A session found to be dead is
evicted on the spot and reported as absent, so a caller can never observe an
expired session, and no background task is needed for correctness.  The
optional sweeper (``session_auth.auth.sweeper``) only bounds memory; it calls
``purge_expired`` which evicts through the same ``_evict`` path as the lazy
check.

``_evict`` removes an entry only if the table still maps the id to the very
same ``Session`` object.  Lazy expiry and the sweep may therefore race on the
same id without one of them removing something the other did not see.

Locking is two-level: ``self._lock`` guards the dict and is held only for
single dict operations; each ``Session`` guards its own refresh timestamp.
No lock is held while anything slow happens; the store never calls out.
"""

from __future__ import annotations

import abc
import datetime
import logging
import secrets
import threading
from collections.abc import Callable

from session_auth.auth.principal import Principal
from session_auth.auth.session import DEFAULT_TIMEOUT, Session
from session_auth.errors import FatalAuthError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]

# 32 bytes = 256 bits of entropy.
SESSION_ID_BYTES = 32


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _short(session_id: str) -> str:
    return session_id[:8]


class SessionStore(abc.ABC):
    """Contract the service facade relies on.

    Implementations must make every operation linearizable per session id and
    must treat expired sessions exactly like missing ones.
    """

    @abc.abstractmethod
    def create(
        self, principal: Principal, timeout: datetime.timedelta = DEFAULT_TIMEOUT
    ) -> str:
        """Store a new session for *principal* and return its id."""

    @abc.abstractmethod
    def get(self, session_id: str) -> Session | None:
        """Return the live session for *session_id*, or ``None``."""

    @abc.abstractmethod
    def refresh(self, session_id: str) -> bool:
        """Restart the timeout window.  ``False`` if absent or expired."""

    @abc.abstractmethod
    def destroy(self, session_id: str) -> bool:
        """Remove the session.  ``False`` if it was not live."""

    @abc.abstractmethod
    def purge_expired(self) -> int:
        """Evict every expired session and return how many were removed."""

    @abc.abstractmethod
    def clear(self) -> int:
        """Remove every session and return how many were removed."""


class InMemorySessionStore(SessionStore):
    """Process-local ``SessionStore`` backed by a dict."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(
        self, principal: Principal, timeout: datetime.timedelta = DEFAULT_TIMEOUT
    ) -> str:
        if timeout <= datetime.timedelta(0):
            raise ValueError(f"Session timeout must be positive, got {timeout}")

        session_id = self._new_session_id()
        session = Session.start(session_id, principal, self._clock(), timeout)

        with self._lock:
            # A collision on 256 random bits means the entropy source is broken.
            if session_id in self._sessions:
                raise FatalAuthError("Session id collision: entropy source is unreliable")
            self._sessions[session_id] = session

        logger.info(
            "Created session %s... for principal=%s, timeout=%ss",
            _short(session_id),
            principal.principal_id,
            int(timeout.total_seconds()),
        )
        return session_id

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        if not session.is_live(self._clock()):
            self._evict(session, reason="expired")
            return None
        return session

    def refresh(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return False
        if not session.touch(self._clock()):
            self._evict(session, reason="expired")
            return False
        logger.debug("Refreshed session %s...", _short(session_id))
        return True

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return False
        # An expired session is still removed, but reported as not found.
        live = session.is_live(self._clock())
        removed = self._evict(session, reason="logout" if live else "expired")
        return live and removed

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            candidates = list(self._sessions.values())
        removed = 0
        for session in candidates:
            if not session.is_live(now) and self._evict(session, reason="expired"):
                removed += 1
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    def clear(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.auth_cache.clear()
        if sessions:
            logger.info("Invalidated %d session(s)", len(sessions))
        return len(sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # -- private helpers -----------------------------------------------------

    def _evict(self, session: Session, reason: str) -> bool:
        """Remove *session* if it is still the entry stored under its id."""
        with self._lock:
            if self._sessions.get(session.session_id) is not session:
                return False
            del self._sessions[session.session_id]
        session.auth_cache.clear()
        logger.info(
            "Removed session %s... (principal=%s, reason=%s)",
            _short(session.session_id),
            session.principal.principal_id,
            reason,
        )
        return True

    @staticmethod
    def _new_session_id() -> str:
        try:
            return secrets.token_urlsafe(SESSION_ID_BYTES)
        except (OSError, NotImplementedError) as exc:
            raise FatalAuthError(f"Entropy source failure: {exc}") from exc
