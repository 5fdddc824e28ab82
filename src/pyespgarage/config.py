"""Accessory configuration for pyespgarage."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pyespgarage._constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DEBOUNCE,
    DEFAULT_LIVENESS_TIMEOUT,
    DEFAULT_NAME,
    DEFAULT_OPENING_TIME,
    DEFAULT_PORT,
    DEFAULT_RETRY_BACKOFF,
)
from pyespgarage.exceptions import GarageConfigError

_UNBOUNDED_WORDS = frozenset({"", "none", "unbounded", "inf", "infinite"})


def _env_max_retries(value: str) -> int | None:
    normalized = value.strip().lower()
    if normalized in _UNBOUNDED_WORDS:
        return None
    try:
        return int(normalized)
    except ValueError as exc:
        raise GarageConfigError(f"ESPGARAGE_MAX_RETRIES must be an integer, got {value!r}") from exc


def _to_number(label: str, value: Any, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise GarageConfigError(f"{label} must be a number, got {value!r}") from exc


# Accessory config blocks may carry numbers as strings.
_MAPPING_NUMERIC_FIELDS: dict[str, type[int] | type[float]] = {
    "port": int,
    "opening_time": float,
    "debounce": float,
    "liveness_timeout": float,
    "retry_backoff": float,
    "max_retries": int,
    "connect_timeout": float,
    "command_timeout": float,
}


@dataclasses.dataclass(frozen=True)
class GarageDoorConfig:
    """Accessory configuration.

    All durations are in seconds.

    Parameters
    ----------
    host : str
        Hostname or IP address of the ESPHome device.
    port : int
        HTTP port of the device's ``web_server`` component.
    name : str
        Accessory display name.
    opening_time : float
        Time the door needs to travel. Used as the deadline after which an
        unconfirmed open/close command is assumed complete.
    debounce : float
        Window over which bursts of device ``state`` events are coalesced.
        ``0`` still defers application to the next loop iteration.
    liveness_timeout : float
        Maximum silence (no heartbeat) before the stream is declared dead.
    retry_backoff : float
        Fixed delay between reconnect attempts.
    max_retries : int or None
        Reconnect attempts allowed before giving up. ``None`` retries forever.
    connect_timeout : float
        Timeout for opening the event stream.
    command_timeout : float
        Total timeout for a single open/close request.
    """

    host: str
    port: int = DEFAULT_PORT
    name: str = DEFAULT_NAME
    opening_time: float = DEFAULT_OPENING_TIME
    debounce: float = DEFAULT_DEBOUNCE
    liveness_timeout: float = DEFAULT_LIVENESS_TIMEOUT
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    max_retries: int | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise GarageConfigError("host must be a non-empty string")
        if not 1 <= int(self.port) <= 65535:
            raise GarageConfigError(f"port must be between 1 and 65535, got {self.port}")
        for field_name in (
            "opening_time",
            "liveness_timeout",
            "retry_backoff",
            "connect_timeout",
            "command_timeout",
        ):
            if getattr(self, field_name) <= 0:
                raise GarageConfigError(f"{field_name} must be positive, got {getattr(self, field_name)}")
        if self.debounce < 0:
            raise GarageConfigError(f"debounce must not be negative, got {self.debounce}")
        if self.max_retries is not None and self.max_retries < 0:
            raise GarageConfigError(f"max_retries must be None or >= 0, got {self.max_retries}")

    @property
    def base_url(self) -> str:
        """``http://host:port`` root of the device's web server."""
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls, **overrides: Any) -> GarageDoorConfig:
        """Create configuration from environment variables.

        Reads ``ESPGARAGE_HOST`` and the optional ``ESPGARAGE_*`` variables
        listed below. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GarageDoorConfig
            Populated configuration.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in (("ESPGARAGE_HOST", "host"), ("ESPGARAGE_NAME", "name")):
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "ESPGARAGE_PORT": ("port", int),
            "ESPGARAGE_OPENING_TIME": ("opening_time", float),
            "ESPGARAGE_DEBOUNCE": ("debounce", float),
            "ESPGARAGE_LIVENESS_TIMEOUT": ("liveness_timeout", float),
            "ESPGARAGE_RETRY_BACKOFF": ("retry_backoff", float),
            "ESPGARAGE_CONNECT_TIMEOUT": ("connect_timeout", float),
            "ESPGARAGE_COMMAND_TIMEOUT": ("command_timeout", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _to_number(env_key, val, cast)

        retries_env = env.get("ESPGARAGE_MAX_RETRIES")
        if retries_env is not None and "max_retries" not in overrides:
            config_kwargs["max_retries"] = _env_max_retries(retries_env)

        config_kwargs.update(overrides)
        if "host" not in config_kwargs:
            raise GarageConfigError("ESPGARAGE_HOST is not set and no host was given")

        return cls(**config_kwargs)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> GarageDoorConfig:
        """Create configuration from an accessory config block.

        Unknown keys (``accessory``, ``platform``, ...) are ignored.
        Numeric fields given as strings are converted; values that are not
        numbers raise :class:`GarageConfigError`.
        ``port`` and ``opening_time`` fall back to their defaults when they
        are missing, ``0`` or ``None``.
        """
        known = {field.name for field in dataclasses.fields(cls)}
        kwargs = {key: value for key, value in mapping.items() if key in known}
        if "host" not in kwargs:
            raise GarageConfigError("accessory config is missing 'host'")
        for field_name, cast in _MAPPING_NUMERIC_FIELDS.items():
            value = kwargs.pop(field_name, None)
            if value is not None and value != "":
                kwargs[field_name] = _to_number(field_name, value, cast)
        # Same falsy fallback as the accessory config schema documents.
        kwargs["port"] = kwargs.get("port") or DEFAULT_PORT
        kwargs["opening_time"] = kwargs.get("opening_time") or DEFAULT_OPENING_TIME
        return cls(**kwargs)
