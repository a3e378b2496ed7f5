"""Realm backed by plain Python mappings.

Used directly when embedding the service in tests or small applications, and
as the parsed form of the properties-file realm.
"""

from __future__ import annotations

import dataclasses
import hmac
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from session_auth.auth.principal import Principal
from session_auth.errors import ConfigError, InvalidCredentials
from session_auth.realms.base import Credentials, username_password

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class UserRecord:
    password: str
    roles: tuple[str, ...] = ()


class InMemoryRealm:
    """Verifies username/password pairs against an in-memory user table.

    Permissions are attached to roles, as in the properties file format: a
    user's permissions are the union of the permissions of all their roles.
    """

    def __init__(
        self,
        users: Mapping[str, UserRecord],
        role_permissions: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._users = dict(users)
        self._role_permissions = {
            role: frozenset(perms) for role, perms in (role_permissions or {}).items()
        }

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> InMemoryRealm:
        """Build from a config block like::

            users:
              tim: {password: sausages, roles: [developer]}
            roles:
              developer: [commit_code]
        """
        users_block = config.get("users") or {}
        if not isinstance(users_block, Mapping):
            raise ConfigError("Memory realm 'users' must be a mapping")
        users: dict[str, UserRecord] = {}
        for name, entry in users_block.items():
            if not isinstance(entry, Mapping) or "password" not in entry:
                raise ConfigError(f"Memory realm user '{name}' needs a 'password'")
            users[str(name)] = UserRecord(
                password=str(entry["password"]),
                roles=tuple(str(r) for r in entry.get("roles", [])),
            )
        roles_block = config.get("roles") or {}
        if not isinstance(roles_block, Mapping):
            raise ConfigError("Memory realm 'roles' must be a mapping")
        return cls(users, {str(k): [str(p) for p in v or []] for k, v in roles_block.items()})

    def verify(self, credentials: Credentials) -> Principal:
        username, password = username_password(credentials)
        record = self._users.get(username)
        # Compare against something even for unknown users.
        expected = record.password if record is not None else ""
        matched = hmac.compare_digest(password.encode(), expected.encode())
        if record is None or not matched:
            logger.info("Login rejected for user %s", username)
            raise InvalidCredentials(f"Invalid username or password for '{username}'")
        return Principal.of(
            principal_id=username,
            roles=record.roles,
            permissions=self._permissions_for(record.roles),
        )

    @property
    def usernames(self) -> list[str]:
        return sorted(self._users)

    # -- private helpers -----------------------------------------------------

    def _permissions_for(self, roles: Iterable[str]) -> frozenset[str]:
        perms: set[str] = set()
        for role in roles:
            perms |= self._role_permissions.get(role, frozenset())
        return frozenset(perms)
