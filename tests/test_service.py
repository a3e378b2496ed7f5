"""Tests for the AuthService facade: login lifecycle and cached authorisation."""

from __future__ import annotations

import asyncio
import datetime
import threading

import pytest

from session_auth.auth.principal import Principal
from session_auth.auth.session_store import InMemorySessionStore
from session_auth.config import AuthServiceConfig
from session_auth.errors import (
    FatalAuthError,
    InvalidCredentials,
    ServiceNotStartedError,
    SessionNotFound,
)
from session_auth.realms.memory import InMemoryRealm, UserRecord
from session_auth.service import AuthService

from conftest import FakeClock

TIM = {"username": "tim", "password": "sausages"}
BOB = {"username": "bob", "password": "hispassword"}


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class TestLogin:
    @pytest.mark.asyncio
    async def test_simple_login(self, service: AuthService) -> None:
        session_id = await service.login(TIM)
        assert isinstance(session_id, str) and session_id

    @pytest.mark.asyncio
    async def test_simple_login_fail(
        self, service: AuthService, store: InMemorySessionStore
    ) -> None:
        with pytest.raises(InvalidCredentials):
            await service.login({"username": "tim", "password": "wrongpassword"})
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unknown_user_fails(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentials):
            await service.login({"username": "mallory", "password": "x"})

    @pytest.mark.asyncio
    async def test_missing_fields_fail(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentials):
            await service.login({"user": "tim"})

    @pytest.mark.asyncio
    async def test_each_login_gets_a_new_session(self, service: AuthService) -> None:
        first = await service.login(TIM)
        second = await service.login(TIM)
        assert first != second

    @pytest.mark.asyncio
    async def test_default_timeout_is_thirty_minutes(
        self, service: AuthService, clock: FakeClock
    ) -> None:
        session_id = await service.login(TIM)
        clock.advance(29 * 60 + 59)
        assert await service.has_role(session_id, "developer")
        clock.advance(1)
        with pytest.raises(SessionNotFound):
            await service.has_role(session_id, "developer")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [30, 30.0, "30s", datetime.timedelta(seconds=30)])
    async def test_login_with_timeout(
        self, service: AuthService, clock: FakeClock, timeout: object
    ) -> None:
        session_id = await service.login_with_timeout(TIM, timeout)
        clock.advance(29)
        assert await service.has_role(session_id, "developer")
        clock.advance(1)
        with pytest.raises(SessionNotFound):
            await service.has_role(session_id, "developer")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -5, "soon", float("inf"), "1e20s"])
    async def test_invalid_timeout_rejected(self, service: AuthService, timeout: object) -> None:
        with pytest.raises(ValueError):
            await service.login(TIM, timeout=timeout)

    @pytest.mark.asyncio
    async def test_realm_crash_is_fatal_and_leaves_no_session(
        self, store: InMemorySessionStore
    ) -> None:
        class BrokenRealm:
            def verify(self, credentials):
                raise RuntimeError("disk on fire")

        async with AuthService(verifier=BrokenRealm(), store=store) as service:
            with pytest.raises(FatalAuthError, match="disk on fire"):
                await service.login(TIM)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_async_realm_is_awaited(self, store: InMemorySessionStore) -> None:
        class AsyncRealm:
            async def verify(self, credentials):
                return Principal.of(credentials["username"], roles=["remote"])

        async with AuthService(verifier=AsyncRealm(), store=store) as service:
            session_id = await service.login({"username": "ann"})
            assert await service.has_role(session_id, "remote")

    @pytest.mark.asyncio
    async def test_realm_runs_without_store_lock(
        self, realm: InMemoryRealm, store: InMemorySessionStore
    ) -> None:
        """The store stays usable while a slow realm call is in flight."""

        class SlowRealm:
            def verify(self, credentials):
                assert not store._lock.locked()
                return realm.verify(credentials)

        async with AuthService(verifier=SlowRealm(), store=store) as service:
            ids = await asyncio.gather(*(service.login(BOB) for _ in range(5)))
        assert len(set(ids)) == 5


# ---------------------------------------------------------------------------
# Refresh and logout
# ---------------------------------------------------------------------------

class TestRefreshAndLogout:
    @pytest.mark.asyncio
    async def test_refresh_within_window_succeeds(
        self, service: AuthService, clock: FakeClock
    ) -> None:
        session_id = await service.login(TIM, timeout=30)
        clock.advance(25)
        await service.refresh_login_session(session_id)
        clock.advance(25)
        await service.refresh_login_session(session_id)
        assert await service.has_role(session_id, "administrator")

    @pytest.mark.asyncio
    async def test_refresh_after_timeout_fails(
        self, service: AuthService, clock: FakeClock
    ) -> None:
        session_id = await service.login(TIM, timeout=30)
        await service.refresh_login_session(session_id)
        clock.advance(31)
        with pytest.raises(SessionNotFound):
            await service.refresh_login_session(session_id)

    @pytest.mark.asyncio
    async def test_checks_do_not_refresh(self, service: AuthService, clock: FakeClock) -> None:
        session_id = await service.login(TIM, timeout=30)
        for _ in range(3):
            clock.advance(9)
            assert await service.has_role(session_id, "developer")
        clock.advance(3)
        with pytest.raises(SessionNotFound):
            await service.has_role(session_id, "developer")

    @pytest.mark.asyncio
    async def test_logout_then_has_role_fails(self, service: AuthService) -> None:
        session_id = await service.login(TIM)
        await service.logout(session_id)
        with pytest.raises(SessionNotFound):
            await service.has_role(session_id, "developer")

    @pytest.mark.asyncio
    async def test_logout_twice(self, service: AuthService) -> None:
        session_id = await service.login(TIM)
        await service.logout(session_id)
        with pytest.raises(SessionNotFound):
            await service.logout(session_id)

    @pytest.mark.asyncio
    async def test_logout_only_ends_that_session(self, service: AuthService) -> None:
        tim = await service.login(TIM)
        bob = await service.login(BOB)
        await service.logout(tim)
        assert await service.has_role(bob, "developer")

    @pytest.mark.asyncio
    async def test_missing_expired_and_logged_out_look_the_same(
        self, service: AuthService, clock: FakeClock
    ) -> None:
        logged_out = await service.login(TIM)
        await service.logout(logged_out)
        expired = await service.login(TIM, timeout=10)
        clock.advance(11)

        messages = []
        for session_id in ("never-existed", logged_out, expired):
            with pytest.raises(SessionNotFound) as excinfo:
                await service.has_permission(session_id, "do_actual_work")
            messages.append(str(excinfo.value))
        assert len(set(messages)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_refresh(self, service: AuthService, store: InMemorySessionStore) -> None:
        session_id = await service.login(TIM)
        await asyncio.gather(*(service.refresh_login_session(session_id) for _ in range(50)))
        session = store.get(session_id)
        assert session is not None
        assert isinstance(session.last_refreshed_at, datetime.datetime)


# ---------------------------------------------------------------------------
# Authorisation
# ---------------------------------------------------------------------------

class TestAuthorisation:
    @pytest.mark.asyncio
    async def test_login_then_has_role(self, service: AuthService) -> None:
        session_id = await service.login(BOB)
        assert await service.has_role(session_id, "developer")
        assert not await service.has_role(session_id, "manager")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "roles",
        [
            ["administrator", "developer"],
            ["developer", "manager"],
            ["manager"],
            ["administrator"],
            [],
        ],
    )
    async def test_has_roles_is_and_of_has_role(
        self, service: AuthService, roles: list[str]
    ) -> None:
        for creds in (TIM, BOB):
            session_id = await service.login(creds)
            individually = [await service.has_role(session_id, r) for r in roles]
            assert await service.has_roles(session_id, set(roles)) is all(individually)

    @pytest.mark.asyncio
    async def test_permissions_follow_roles(self, service: AuthService) -> None:
        joe = await service.login({"username": "joe", "password": "anotherpassword"})
        assert await service.has_permission(joe, "play_golf")
        assert await service.has_permissions(joe, ["play_golf", "say_buzzwords"])
        assert not await service.has_permission(joe, "do_actual_work")
        assert not await service.has_permissions(joe, ["play_golf", "do_actual_work"])

    @pytest.mark.asyncio
    async def test_wildcard_role_grants_all_permissions(self, service: AuthService) -> None:
        tim = await service.login(TIM)
        assert await service.has_permission(tim, "anything_at_all")
        assert await service.has_permissions(tim, ["play_golf", "do_actual_work"])

    @pytest.mark.asyncio
    async def test_user_without_roles(self, service: AuthService) -> None:
        eve = await service.login({"username": "eve", "password": "nothing"})
        assert not await service.has_role(eve, "developer")
        assert await service.has_roles(eve, [])

    @pytest.mark.asyncio
    async def test_bare_string_is_not_a_role_set(self, service: AuthService) -> None:
        bob = await service.login(BOB)
        with pytest.raises(TypeError):
            await service.has_roles(bob, "developer")
        with pytest.raises(TypeError):
            await service.has_permissions(bob, "do_actual_work")

    @pytest.mark.asyncio
    async def test_authorisation_is_cached_for_the_login(
        self, store: InMemorySessionStore
    ) -> None:
        """Role changes in the realm are not seen until the next login."""
        users = {"ann": UserRecord(password="pw", roles=("developer",))}
        realm = InMemoryRealm(users)
        async with AuthService(verifier=realm, store=store) as service:
            first = await service.login({"username": "ann", "password": "pw"})
            assert await service.has_role(first, "developer")

            realm._users["ann"] = UserRecord(password="pw", roles=("manager",))
            assert await service.has_role(first, "developer")
            assert not await service.has_role(first, "manager")

            second = await service.login({"username": "ann", "password": "pw"})
            assert await service.has_role(second, "manager")
            assert not await service.has_role(second, "developer")

    @pytest.mark.asyncio
    async def test_timeout_scenario(self, store: InMemorySessionStore, clock: FakeClock) -> None:
        """tim logs in with a 30 s timeout; 31 s later the session is gone."""
        realm = InMemoryRealm(
            {"tim": UserRecord(password="sausages", roles=("developer",))}
        )
        async with AuthService(verifier=realm, store=store) as service:
            s1 = await service.login(TIM, timeout=datetime.timedelta(seconds=30))
            assert await service.has_role(s1, "developer")
            clock.advance(31)
            with pytest.raises(SessionNotFound):
                await service.has_role(s1, "developer")
            assert len(store) == 0


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class GatedRealm:
    """Blocks inside verify() until the test releases it."""

    def __init__(self, inner: InMemoryRealm) -> None:
        self.inner = inner
        self.entered = threading.Event()
        self.release = threading.Event()

    def verify(self, credentials):
        self.entered.set()
        self.release.wait(5)
        return self.inner.verify(credentials)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_operations_require_start(self, realm: InMemoryRealm) -> None:
        service = AuthService(verifier=realm)
        with pytest.raises(ServiceNotStartedError):
            await service.login(TIM)
        with pytest.raises(ServiceNotStartedError):
            await service.has_role("x", "developer")

    @pytest.mark.asyncio
    async def test_stop_invalidates_all_sessions(
        self, realm: InMemoryRealm, store: InMemorySessionStore
    ) -> None:
        service = AuthService(verifier=realm, store=store)
        await service.start()
        session_id = await service.login(TIM)
        await service.stop()

        assert len(store) == 0
        await service.start()
        with pytest.raises(SessionNotFound):
            await service.has_role(session_id, "developer")
        await service.stop()

    @pytest.mark.asyncio
    async def test_login_in_flight_during_stop_is_refused(
        self, realm: InMemoryRealm, store: InMemorySessionStore
    ) -> None:
        gate = GatedRealm(realm)
        service = AuthService(verifier=gate, store=store)
        await service.start()
        pending = asyncio.create_task(service.login(TIM))
        try:
            assert await asyncio.to_thread(gate.entered.wait, 5)
            await service.stop()
        finally:
            gate.release.set()

        with pytest.raises(ServiceNotStartedError):
            await pending
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_login_straddling_restart_is_refused(
        self, realm: InMemoryRealm, store: InMemorySessionStore
    ) -> None:
        gate = GatedRealm(realm)
        service = AuthService(verifier=gate, store=store)
        await service.start()
        pending = asyncio.create_task(service.login(TIM))
        try:
            assert await asyncio.to_thread(gate.entered.wait, 5)
            await service.stop()
            await service.start()
        finally:
            gate.release.set()

        with pytest.raises(ServiceNotStartedError):
            await pending
        assert len(store) == 0
        await service.stop()

    @pytest.mark.parametrize("timeout", [0, -30, datetime.timedelta(seconds=-1)])
    def test_non_positive_default_timeout_rejected(
        self, realm: InMemoryRealm, timeout: object
    ) -> None:
        with pytest.raises(ValueError, match="default_timeout"):
            AuthService(verifier=realm, default_timeout=timeout)

    @pytest.mark.asyncio
    async def test_sweeper_runs_while_started(
        self, realm: InMemoryRealm, store: InMemorySessionStore, clock: FakeClock
    ) -> None:
        service = AuthService(
            verifier=realm, store=store, sweep_interval=datetime.timedelta(milliseconds=10)
        )
        async with service:
            await service.login(TIM, timeout=5)
            clock.advance(6)
            for _ in range(100):
                if len(store) == 0:
                    break
                await asyncio.sleep(0.01)
            assert len(store) == 0

    def test_create_from_config(self) -> None:
        config = AuthServiceConfig(
            default_timeout=datetime.timedelta(minutes=5),
            sweep_interval=None,
            realm={"type": "memory", "users": {"tim": {"password": "pw"}}},
        )
        service = AuthService.create(config)
        assert isinstance(service._verifier, InMemoryRealm)
        assert not service.started
        assert service.default_timeout == datetime.timedelta(minutes=5)
