"""Login session that carries an authenticated principal between requests.

Pattern: Sliding-Window Session
--------------------------------
A ``Session`` is created after the realm verifies a user's credentials and is
referenced afterwards only by its opaque ``session_id``.  It stays live while
fewer than ``timeout`` has elapsed since ``last_refreshed_at``.  Only an
explicit refresh moves that timestamp; reading the session or checking its
roles does not.

The principal and the timeout never change after creation.  The refresh
timestamp is the one mutable field and is guarded by a per-session lock so
concurrent refreshes and reads of the same session never see a torn value.
"""

from __future__ import annotations

import dataclasses
import datetime
import threading

from session_auth.auth.authz_cache import AuthorizationCache
from session_auth.auth.principal import Principal

DEFAULT_TIMEOUT = datetime.timedelta(minutes=30)


@dataclasses.dataclass(eq=False)
class Session:
    """State of a single login.

    Attributes:
        session_id:        Unguessable token handed to the caller at login.
        principal:         Identity resolved by the realm at login.
        created_at:        UTC timestamp of the login.
        last_refreshed_at: UTC timestamp of the login or of the last refresh.
        timeout:           Idle window after which the session is dead.
        auth_cache:        Role/permission decisions made for this login.
    """

    session_id: str
    principal: Principal
    created_at: datetime.datetime
    last_refreshed_at: datetime.datetime
    timeout: datetime.timedelta = DEFAULT_TIMEOUT
    auth_cache: AuthorizationCache = dataclasses.field(init=False, repr=False)
    _lock: threading.Lock = dataclasses.field(
        init=False, repr=False, default_factory=threading.Lock
    )

    def __post_init__(self) -> None:
        self.auth_cache = AuthorizationCache(self.principal)

    @classmethod
    def start(
        cls,
        session_id: str,
        principal: Principal,
        now: datetime.datetime,
        timeout: datetime.timedelta = DEFAULT_TIMEOUT,
    ) -> Session:
        return cls(
            session_id=session_id,
            principal=principal,
            created_at=now,
            last_refreshed_at=now,
            timeout=timeout,
        )

    def is_live(self, now: datetime.datetime) -> bool:
        with self._lock:
            return now - self.last_refreshed_at < self.timeout

    def touch(self, now: datetime.datetime) -> bool:
        """Move ``last_refreshed_at`` to *now* if the session is still live.

        Returns ``False`` (and leaves the session untouched) if it had
        already expired.  The check and the update happen under one lock.
        """
        with self._lock:
            if now - self.last_refreshed_at >= self.timeout:
                return False
            # Never move the window backwards when refreshes race.
            if now > self.last_refreshed_at:
                self.last_refreshed_at = now
            return True

    def expires_at(self) -> datetime.datetime:
        with self._lock:
            return self.last_refreshed_at + self.timeout

    def __str__(self) -> str:
        return (
            f"Session(id={self.session_id[:8]}..., principal={self.principal.principal_id}, "
            f"timeout={self.timeout})"
        )
