"""Realm that reads users, roles and permissions from a properties file.

File format
-----------
Each non-comment line either declares a user or lists a role's permissions::

    user.tim = mypassword,administrator,developer
    user.bob = hispassword,developer
    role.administrator = *
    role.developer = do_actual_work

A user line is ``user.<name> = <password>[,<role>...]``; a role line is
``role.<name> = <permission>[,<permission>...]``.  ``*`` as a permission
grants every permission.  Lines starting with ``#`` or ``!`` are comments, a
trailing backslash continues the value on the next line, and ``=`` or ``:``
may separate key and value.

Locating the file
-----------------
``properties_path`` is resolved by prefix:

  - ``file:<path>``              a path on the file system
  - ``package:<package>/<name>`` a resource shipped inside an importable package
  - ``url:<url>``                fetched over HTTP(S)
  - anything else                treated as a plain file system path
"""

from __future__ import annotations

import importlib.resources
import logging
import pathlib
from collections.abc import Iterator, Mapping
from typing import Any

import requests

from session_auth.auth.principal import Principal
from session_auth.errors import ConfigError
from session_auth.realms.base import Credentials
from session_auth.realms.memory import InMemoryRealm, UserRecord

logger = logging.getLogger(__name__)

DEFAULT_PROPERTIES_PATH = "file:users.properties"
URL_FETCH_TIMEOUT_SECONDS = 10

_USER_PREFIX = "user."
_ROLE_PREFIX = "role."


def read_properties_text(properties_path: str) -> str:
    """Return the text behind a ``file:``/``package:``/``url:``/plain *properties_path*."""
    if properties_path.startswith("url:"):
        return _fetch_url(properties_path[len("url:"):])
    try:
        if properties_path.startswith("package:"):
            location = properties_path[len("package:"):]
            package, _, resource = location.partition("/")
            if not package or not resource:
                raise ConfigError(
                    f"package: path must look like 'package:<pkg>/<resource>', got {properties_path!r}"
                )
            return importlib.resources.files(package).joinpath(resource).read_text(encoding="utf-8")
        if properties_path.startswith("file:"):
            properties_path = properties_path[len("file:"):]
        return pathlib.Path(properties_path).read_text(encoding="utf-8")
    except (OSError, ModuleNotFoundError) as exc:
        raise ConfigError(f"Cannot read properties file {properties_path!r}: {exc}") from exc


def iter_properties(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(key, value)`` pairs from Java-style properties *text*."""
    pending = ""
    for raw in text.splitlines():
        line = raw.strip()
        if not pending and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\"):
            pending += line[:-1]
            continue
        line, pending = pending + line, ""
        if not line:
            continue
        key, value = _split_entry(line)
        yield key, value
    if pending:
        yield _split_entry(pending)


def parse_properties(text: str) -> InMemoryRealm:
    users: dict[str, UserRecord] = {}
    role_permissions: dict[str, list[str]] = {}

    for key, value in iter_properties(text):
        items = [item.strip() for item in value.split(",")]
        if key.startswith(_USER_PREFIX):
            username = key[len(_USER_PREFIX):]
            if not username:
                raise ConfigError(f"Empty user name in properties key {key!r}")
            password, *roles = items
            users[username] = UserRecord(password=password, roles=tuple(r for r in roles if r))
        elif key.startswith(_ROLE_PREFIX):
            role = key[len(_ROLE_PREFIX):]
            if not role:
                raise ConfigError(f"Empty role name in properties key {key!r}")
            role_permissions[role] = [p for p in items if p]
        else:
            logger.warning("Ignoring unrecognised properties key %r", key)

    return InMemoryRealm(users, role_permissions)


class PropertiesRealm:
    """Realm reading its user table from a properties file.

    The file is parsed once at construction.  Call ``reload()`` to pick up
    edits; sessions already logged in keep the principal they were given.
    """

    def __init__(self, properties_path: str = DEFAULT_PROPERTIES_PATH) -> None:
        self._properties_path = properties_path
        self._realm = self._load()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> PropertiesRealm:
        return cls(properties_path=config.get("properties_path", DEFAULT_PROPERTIES_PATH))

    @property
    def properties_path(self) -> str:
        return self._properties_path

    def reload(self) -> None:
        """Re-read the properties file."""
        self._realm = self._load()

    def verify(self, credentials: Credentials) -> Principal:
        return self._realm.verify(credentials)

    # -- private helpers -----------------------------------------------------

    def _load(self) -> InMemoryRealm:
        realm = parse_properties(read_properties_text(self._properties_path))
        logger.info(
            "Loaded %d user(s) from %s", len(realm.usernames), self._properties_path
        )
        return realm


def _split_entry(line: str) -> tuple[str, str]:
    positions = [pos for pos in (line.find("="), line.find(":")) if pos != -1]
    if not positions:
        raise ConfigError(f"Malformed properties line (no '=' or ':'): {line!r}")
    sep = min(positions)
    return line[:sep].strip(), line[sep + 1:].strip()


def _fetch_url(url: str) -> str:
    try:
        response = requests.get(url, timeout=URL_FETCH_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ConfigError(f"Cannot fetch properties from {url!r}: {exc}") from exc
    return response.text
