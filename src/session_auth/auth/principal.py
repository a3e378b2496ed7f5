"""Resolved identity produced by a realm at login time.

A ``Principal`` is computed once, when the credentials are verified, and is
then owned by the login session.  Role or permission changes made upstream
after that point are not visible until the user logs in again.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable

WILDCARD_PERMISSION = "*"


@dataclasses.dataclass(frozen=True)
class Principal:
    """Immutable identity plus the roles and permissions it resolved to.

    Attributes:
        principal_id: Username or entity ID reported by the realm.
        roles:        Role names held by the principal.
        permissions:  Permission names granted through those roles.  A
                      ``"*"`` entry grants every permission.
    """

    principal_id: str
    roles: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()

    @classmethod
    def of(
        cls,
        principal_id: str,
        roles: Iterable[str] = (),
        permissions: Iterable[str] = (),
    ) -> Principal:
        return cls(
            principal_id=principal_id,
            roles=frozenset(roles),
            permissions=frozenset(permissions),
        )

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_permission(self, permission: str) -> bool:
        return WILDCARD_PERMISSION in self.permissions or permission in self.permissions

    def __str__(self) -> str:
        return f"Principal(id={self.principal_id}, roles={sorted(self.roles)})"
