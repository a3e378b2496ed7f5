"""Settings file loading.

The service reads one YAML file (``config/settings.yaml`` by default)::

    auth:
      default_timeout: 30m
      sweep_interval: 1m
    realm:
      type: properties
      properties_path: file:config/users.properties

Only the ``auth`` block belongs to the service itself.  The ``realm`` block
is handed untouched to the realm factory.
"""

from __future__ import annotations

import dataclasses
import datetime
import os
import pathlib
from collections.abc import Mapping
from typing import Any

import yaml

from session_auth.auth.session import DEFAULT_TIMEOUT
from session_auth.auth.sweeper import DEFAULT_SWEEP_INTERVAL
from session_auth.errors import ConfigError

CONFIG_ENV_VAR = "SESSION_AUTH_CONFIG"
DEFAULT_CONFIG_PATH = pathlib.Path("config") / "settings.yaml"


def parse_duration(value: str | int | float | datetime.timedelta) -> datetime.timedelta:
    """Parse a duration given as seconds or a Vault-style string.

    Examples: ``"5m"`` → 5 minutes, ``"1h"`` → 1 hour, ``"30s"`` / ``"30"`` /
    ``30`` → 30 seconds.
    """
    if isinstance(value, datetime.timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.timedelta(seconds=value)
        except (ValueError, OverflowError) as exc:
            raise ConfigError(f"Invalid duration: {value!r}") from exc

    s = str(value).strip()
    try:
        if s.endswith("ms"):
            return datetime.timedelta(milliseconds=float(s[:-2]))
        if s.endswith("m"):
            return datetime.timedelta(minutes=float(s[:-1]))
        if s.endswith("h"):
            return datetime.timedelta(hours=float(s[:-1]))
        if s.endswith("s"):
            return datetime.timedelta(seconds=float(s[:-1]))
        return datetime.timedelta(seconds=float(s))
    except (ValueError, OverflowError) as exc:
        raise ConfigError(f"Invalid duration: {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class AuthServiceConfig:
    """Validated service settings.

    Attributes:
        default_timeout: Session timeout used when ``login`` is not given one.
        sweep_interval:  How often expired sessions are evicted in the
                         background; ``None`` leaves eviction to access time.
        realm:           Raw ``realm`` block for ``create_verifier``.
    """

    default_timeout: datetime.timedelta = DEFAULT_TIMEOUT
    sweep_interval: datetime.timedelta | None = DEFAULT_SWEEP_INTERVAL
    realm: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.default_timeout <= datetime.timedelta(0):
            raise ConfigError("default_timeout must be positive")
        if self.sweep_interval is not None and self.sweep_interval <= datetime.timedelta(0):
            raise ConfigError("sweep_interval must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuthServiceConfig:
        if not isinstance(data, Mapping):
            raise ConfigError("Settings must be a mapping")
        auth_block = data.get("auth") or {}
        realm_block = data.get("realm") or {}
        if not isinstance(auth_block, Mapping):
            raise ConfigError("'auth' must be a mapping")
        if not isinstance(realm_block, Mapping):
            raise ConfigError("'realm' must be a mapping")

        sweep_raw = auth_block.get("sweep_interval", DEFAULT_SWEEP_INTERVAL)
        return cls(
            default_timeout=parse_duration(auth_block.get("default_timeout", DEFAULT_TIMEOUT)),
            sweep_interval=None if sweep_raw is None else parse_duration(sweep_raw),
            realm=dict(realm_block),
        )


def load_config(path: str | pathlib.Path | None = None) -> AuthServiceConfig:
    """Load settings from *path*, ``$SESSION_AUTH_CONFIG`` or the default location."""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = pathlib.Path(path)
    if not config_path.exists():
        raise ConfigError(f"Settings file not found: {config_path}")
    try:
        with open(config_path) as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file {config_path} is not valid YAML: {exc}") from exc
    return AuthServiceConfig.from_dict(data)
