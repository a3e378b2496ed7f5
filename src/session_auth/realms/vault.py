"""Realm that authenticates users against HashiCorp Vault.

Pattern: Vault as Identity Broker
----------------------------------
The user's username and password are checked by Vault's ``userpass`` or
``ldap`` auth method, so the directory behind Vault (including an LDAP server)
stays the source of truth and this service never talks to it directly.

Vault answers a successful login with the policies attached to the issued
token.  Those policies become the principal's roles: each policy name goes
through the optional ``policy_roles`` table, and policies with no entry keep
their own name.  Vault's built-in ``default`` policy is ignored.  Permissions
are then looked up per role in the ``role_permissions`` table.

The Vault token itself is not kept.  Once the principal is resolved, the
login session is owned by this service and bound by its own timeout.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import hvac
import hvac.exceptions
import requests.exceptions

from session_auth.auth.principal import Principal
from session_auth.errors import ConfigError, FatalAuthError, InvalidCredentials
from session_auth.realms.base import Credentials, username_password

logger = logging.getLogger(__name__)

SUPPORTED_AUTH_METHODS = ("userpass", "ldap")
_IGNORED_POLICIES = frozenset(["default"])


class VaultRealm:
    """Verifies credentials with a Vault auth method and maps policies to roles."""

    def __init__(
        self,
        vault_addr: str,
        auth_method: str = "userpass",
        mount_point: str | None = None,
        policy_roles: Mapping[str, str] | None = None,
        role_permissions: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        if auth_method not in SUPPORTED_AUTH_METHODS:
            raise ConfigError(f"Unsupported auth method: {auth_method}")
        self._vault_addr = vault_addr
        self._auth_method = auth_method
        self._mount_point = mount_point or auth_method
        self._policy_roles = dict(policy_roles or {})
        self._role_permissions = {
            role: frozenset(perms) for role, perms in (role_permissions or {}).items()
        }

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> VaultRealm:
        return cls(
            vault_addr=config.get("address", "http://127.0.0.1:8200"),
            auth_method=config.get("auth_method", "userpass"),
            mount_point=config.get("mount_point"),
            policy_roles=config.get("policy_roles"),
            role_permissions=config.get("role_permissions"),
        )

    def verify(self, credentials: Credentials) -> Principal:
        """Log in to Vault with *credentials* and return the resolved principal.

        Raises ``InvalidCredentials`` if Vault rejects the login and
        ``FatalAuthError`` if Vault cannot be reached.
        """
        username, password = username_password(credentials)
        try:
            auth_response = self._login(username, password)
        except hvac.exceptions.VaultDown as exc:
            raise FatalAuthError(f"Vault is sealed or down: {exc}") from exc
        except hvac.exceptions.VaultError as exc:
            logger.info("Vault rejected login for user %s", username)
            raise InvalidCredentials(f"Vault login failed: {exc}") from exc
        except requests.exceptions.ConnectionError as exc:
            raise FatalAuthError(f"Cannot reach Vault at {self._vault_addr}: {exc}") from exc

        policies: list[str] = auth_response["auth"].get("policies") or []
        roles = self._resolve_roles(policies)
        logger.info("User %s authenticated via Vault: roles=%s", username, sorted(roles))

        return Principal.of(
            principal_id=username,
            roles=roles,
            permissions=self._permissions_for(roles),
        )

    # -- private helpers -----------------------------------------------------

    def _login(self, username: str, password: str) -> dict[str, Any]:
        client = hvac.Client(url=self._vault_addr)
        if self._auth_method == "userpass":
            return client.auth.userpass.login(
                username=username, password=password, mount_point=self._mount_point
            )
        return client.auth.ldap.login(
            username=username, password=password, mount_point=self._mount_point
        )

    def _resolve_roles(self, policies: list[str]) -> frozenset[str]:
        return frozenset(
            self._policy_roles.get(policy, policy)
            for policy in policies
            if policy not in _IGNORED_POLICIES
        )

    def _permissions_for(self, roles: Iterable[str]) -> frozenset[str]:
        perms: set[str] = set()
        for role in roles:
            perms |= self._role_permissions.get(role, frozenset())
        return frozenset(perms)
