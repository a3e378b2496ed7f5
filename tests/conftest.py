"""Shared fixtures for tests."""

from __future__ import annotations

import datetime
import pathlib

import pytest
import pytest_asyncio

from session_auth.auth.principal import Principal
from session_auth.auth.session_store import InMemorySessionStore
from session_auth.realms.memory import InMemoryRealm, UserRecord
from session_auth.service import AuthService

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


class FakeClock:
    """Controllable stand-in for ``datetime.datetime.now(UTC)``."""

    def __init__(self, start: datetime.datetime | None = None) -> None:
        self.now = start or datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def developer() -> Principal:
    return Principal.of("tim", roles=["developer"], permissions=["do_actual_work"])


@pytest.fixture
def realm() -> InMemoryRealm:
    return InMemoryRealm(
        users={
            "tim": UserRecord(password="sausages", roles=("administrator", "developer")),
            "bob": UserRecord(password="hispassword", roles=("developer",)),
            "joe": UserRecord(password="anotherpassword", roles=("manager",)),
            "eve": UserRecord(password="nothing"),
        },
        role_permissions={
            "administrator": ["*"],
            "manager": ["play_golf", "say_buzzwords"],
            "developer": ["do_actual_work"],
        },
    )


@pytest_asyncio.fixture
async def service(realm: InMemoryRealm, store: InMemorySessionStore):
    svc = AuthService(verifier=realm, store=store)
    await svc.start()
    yield svc
    await svc.stop()


@pytest.fixture
def users_properties() -> pathlib.Path:
    """The sample properties file shipped in ``config/``."""
    return REPO_ROOT / "config" / "users.properties"
