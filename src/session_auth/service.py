"""Asynchronous authentication and authorisation facade.

Pattern: Session-Scoped Authorisation
--------------------------------------
``login`` exchanges credentials for an opaque session id.  Every later call
(refresh, logout, role and permission checks) takes that id, so callers never
hold the principal themselves and the service alone decides whether the login
is still valid.

Role and permission checks are answered from the principal the realm resolved
at login and are cached for the life of the session.  If a user's roles change
in the realm while they are logged in, the change is seen only after they log
in again.

Every operation is a coroutine.  The realm is the only step that may block,
and it runs in a worker thread with no store lock held.  All failures are
raised from the awaited call:

  - ``InvalidCredentials`` from ``login`` when the realm says no;
  - ``SessionNotFound`` from every other operation when the id is unknown,
    logged out or expired (the three are indistinguishable);
  - ``FatalAuthError`` when the realm or entropy source is broken.
"""

from __future__ import annotations

import asyncio
import datetime
import inspect
import logging
from collections.abc import Iterable
from types import TracebackType

from session_auth.auth.principal import Principal
from session_auth.auth.session import DEFAULT_TIMEOUT, Session
from session_auth.auth.session_store import InMemorySessionStore, SessionStore
from session_auth.auth.sweeper import SessionSweeper
from session_auth.config import AuthServiceConfig, parse_duration
from session_auth.errors import (
    AuthError,
    ConfigError,
    FatalAuthError,
    ServiceNotStartedError,
    SessionNotFound,
)
from session_auth.realms.base import CredentialVerifier, Credentials
from session_auth.realms.factory import create_verifier

logger = logging.getLogger(__name__)

Timeout = datetime.timedelta | int | float | str


class AuthService:
    """Login sessions plus cached role/permission checks over a realm.

    Call ``await start()`` (or use ``async with``) before any other
    operation; ``await stop()`` invalidates every session.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        store: SessionStore | None = None,
        default_timeout: Timeout = DEFAULT_TIMEOUT,
        sweep_interval: Timeout | None = None,
    ) -> None:
        self._verifier = verifier
        self._store = store if store is not None else InMemorySessionStore()
        self._default_timeout = parse_duration(default_timeout)
        if self._default_timeout <= datetime.timedelta(0):
            raise ValueError(f"default_timeout must be positive, got {default_timeout!r}")
        self._sweeper = (
            SessionSweeper(self._store, parse_duration(sweep_interval))
            if sweep_interval is not None
            else None
        )
        self._started = False
        # Bumped on every stop() so logins that straddle a shutdown are refused.
        self._generation = 0

    @classmethod
    def create(cls, config: AuthServiceConfig, store: SessionStore | None = None) -> AuthService:
        """Build a service and its realm from loaded settings."""
        return cls(
            verifier=create_verifier(config.realm),
            store=store,
            default_timeout=config.default_timeout,
            sweep_interval=config.sweep_interval,
        )

    @property
    def default_timeout(self) -> datetime.timedelta:
        return self._default_timeout

    @property
    def started(self) -> bool:
        return self._started

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self._sweeper is not None:
            self._sweeper.start()
        logger.info(
            "Auth service started (default_timeout=%ss)",
            int(self._default_timeout.total_seconds()),
        )

    async def stop(self) -> None:
        """Stop the sweeper and invalidate every session."""
        if not self._started:
            return
        self._started = False
        self._generation += 1
        if self._sweeper is not None:
            await self._sweeper.stop()
        count = self._store.clear()
        logger.info("Auth service stopped, %d session(s) invalidated", count)

    async def __aenter__(self) -> AuthService:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # -- authentication -------------------------------------------------------

    async def login(self, credentials: Credentials, timeout: Timeout | None = None) -> str:
        """Verify *credentials* and return a new session id.

        *timeout* defaults to the service's ``default_timeout`` (30 minutes
        unless configured otherwise).
        """
        self._ensure_started()
        generation = self._generation
        session_timeout = self._resolve_timeout(timeout)
        principal = await self._verify(credentials)
        if not self._started or generation != self._generation:
            logger.info(
                "Discarding login for %s: service stopped during verification",
                principal.principal_id,
            )
            raise ServiceNotStartedError("Auth service stopped while the login was in progress")
        session_id = self._store.create(principal, session_timeout)
        logger.info("Login succeeded for %s", principal.principal_id)
        return session_id

    async def login_with_timeout(self, credentials: Credentials, timeout: Timeout) -> str:
        return await self.login(credentials, timeout=timeout)

    async def refresh_login_session(self, session_id: str) -> None:
        """Restart the session's timeout window."""
        self._ensure_started()
        if not self._store.refresh(session_id):
            raise SessionNotFound()

    async def logout(self, session_id: str) -> None:
        self._ensure_started()
        if not self._store.destroy(session_id):
            raise SessionNotFound()

    # -- authorisation --------------------------------------------------------

    async def has_role(self, session_id: str, role: str) -> bool:
        return self._live_session(session_id).auth_cache.check_role(role)

    async def has_roles(self, session_id: str, roles: Iterable[str]) -> bool:
        """True only if the user holds every one of *roles*."""
        return self._live_session(session_id).auth_cache.check_roles(roles)

    async def has_permission(self, session_id: str, permission: str) -> bool:
        return self._live_session(session_id).auth_cache.check_permission(permission)

    async def has_permissions(self, session_id: str, permissions: Iterable[str]) -> bool:
        """True only if the user is granted every one of *permissions*."""
        return self._live_session(session_id).auth_cache.check_permissions(permissions)

    # -- private helpers ------------------------------------------------------

    def _ensure_started(self) -> None:
        if not self._started:
            raise ServiceNotStartedError("Auth service is not started")

    def _live_session(self, session_id: str) -> Session:
        self._ensure_started()
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    def _resolve_timeout(self, timeout: Timeout | None) -> datetime.timedelta:
        if timeout is None:
            return self._default_timeout
        try:
            resolved = parse_duration(timeout)
        except ConfigError as exc:
            raise ValueError(str(exc)) from exc
        if resolved <= datetime.timedelta(0):
            raise ValueError(f"Session timeout must be positive, got {timeout!r}")
        return resolved

    async def _verify(self, credentials: Credentials) -> Principal:
        verify = self._verifier.verify
        try:
            if inspect.iscoroutinefunction(verify):
                return await verify(credentials)
            return await asyncio.to_thread(verify, credentials)
        except AuthError:
            raise
        except Exception as exc:
            logger.exception("Realm %s failed during login", type(self._verifier).__name__)
            raise FatalAuthError(f"Realm failure: {exc}") from exc
