"""Select and build a realm from the ``realm`` block of the settings file.

Realm variants are picked by name, not by subclassing: ``type`` chooses one of
the built-in realms, or ``custom`` together with ``class_name`` loads any
class whose instances have a ``verify(credentials)`` method.  A custom class
is constructed with the whole realm block as its only argument.
"""

from __future__ import annotations

import enum
import importlib
import logging
from collections.abc import Mapping
from typing import Any

from session_auth.errors import ConfigError
from session_auth.realms.base import CredentialVerifier
from session_auth.realms.memory import InMemoryRealm
from session_auth.realms.properties import PropertiesRealm
from session_auth.realms.vault import VaultRealm

logger = logging.getLogger(__name__)


class RealmType(str, enum.Enum):
    PROPERTIES = "properties"
    VAULT = "vault"
    MEMORY = "memory"
    CUSTOM = "custom"


def create_verifier(realm_config: Mapping[str, Any] | None = None) -> CredentialVerifier:
    """Build the realm described by *realm_config* (defaults to properties)."""
    realm_config = dict(realm_config or {})
    raw_type = realm_config.get("type", RealmType.PROPERTIES.value)
    try:
        realm_type = RealmType(raw_type)
    except ValueError as exc:
        choices = ", ".join(t.value for t in RealmType)
        raise ConfigError(f"Unknown realm type {raw_type!r} (expected one of: {choices})") from exc

    if realm_type is RealmType.PROPERTIES:
        verifier: CredentialVerifier = PropertiesRealm.from_config(realm_config)
    elif realm_type is RealmType.VAULT:
        verifier = VaultRealm.from_config(realm_config)
    elif realm_type is RealmType.MEMORY:
        verifier = InMemoryRealm.from_config(realm_config)
    else:
        verifier = _load_custom(realm_config)

    logger.info("Using %s realm (%s)", realm_type.value, type(verifier).__name__)
    return verifier


def _load_custom(realm_config: Mapping[str, Any]) -> CredentialVerifier:
    class_name = realm_config.get("class_name")
    if not class_name:
        raise ConfigError("A custom realm needs 'class_name' (e.g. 'mypkg.realms:MyRealm')")

    if ":" in class_name:
        module_name, _, attr = class_name.partition(":")
    else:
        module_name, _, attr = class_name.rpartition(".")
    if not module_name or not attr:
        raise ConfigError(f"Invalid realm class name: {class_name!r}")

    try:
        cls = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigError(f"Cannot load realm class {class_name!r}: {exc}") from exc

    verifier = cls(realm_config)
    if not isinstance(verifier, CredentialVerifier):
        raise ConfigError(f"{class_name!r} does not provide verify(credentials)")
    return verifier
