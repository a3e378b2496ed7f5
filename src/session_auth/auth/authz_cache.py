"""Per-session cache of role and permission decisions.

Pattern: Login-Scoped Memoisation
----------------------------------
The first time a session asks about a role or permission the answer is
computed from the session's ``Principal`` and remembered.  Later checks for
the same name return the remembered answer.  The cache lives exactly as long
as the session: it is cleared when the session is logged out, expires, or the
service stops.  There is no independent TTL.

Only individual names are cached.  ``check_roles`` and ``check_permissions``
evaluate the conjunction on every call from the per-name entries, so a caller
that checks many different role combinations cannot grow the cache beyond the
number of distinct names it has asked about.
"""

from __future__ import annotations

import enum
import threading
from collections.abc import Iterable

from session_auth.auth.principal import Principal


class CheckKind(enum.Enum):
    ROLE = "role"
    PERMISSION = "permission"


class AuthorizationCache:
    """Caches ``(kind, name) -> bool`` decisions for one principal."""

    def __init__(self, principal: Principal) -> None:
        self._principal = principal
        self._results: dict[tuple[CheckKind, str], bool] = {}
        self._lock = threading.Lock()

    def check_role(self, role: str) -> bool:
        return self._check(CheckKind.ROLE, role)

    def check_roles(self, roles: Iterable[str]) -> bool:
        """True iff every role is held.  Stops at the first missing role."""
        _require_names(roles)
        return all(self._check(CheckKind.ROLE, role) for role in roles)

    def check_permission(self, permission: str) -> bool:
        return self._check(CheckKind.PERMISSION, permission)

    def check_permissions(self, permissions: Iterable[str]) -> bool:
        """True iff every permission is granted.  Stops at the first denial."""
        _require_names(permissions)
        return all(self._check(CheckKind.PERMISSION, perm) for perm in permissions)

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

    def cached(self, kind: CheckKind, name: str) -> bool | None:
        """Return the cached decision for *name*, or ``None`` if never checked."""
        with self._lock:
            return self._results.get((kind, name))

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    # -- private helpers -----------------------------------------------------

    def _check(self, kind: CheckKind, name: str) -> bool:
        key = (kind, name)
        with self._lock:
            result = self._results.get(key)
            if result is None:
                result = self._compute(kind, name)
                self._results[key] = result
            return result

    def _compute(self, kind: CheckKind, name: str) -> bool:
        if kind is CheckKind.ROLE:
            return self._principal.has_role(name)
        return self._principal.has_permission(name)


def _require_names(names: Iterable[str]) -> None:
    # A bare string would otherwise be checked one character at a time.
    if isinstance(names, str):
        raise TypeError(f"Expected a collection of names, got the string {names!r}")
