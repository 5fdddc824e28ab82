"""Event-stream models: raw tagged stream events and decoded device events."""

from __future__ import annotations

import enum
import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyespgarage.exceptions import MalformedEventError
from pyespgarage.models._base import GarageBaseModel


def split_device_id(device_id: str) -> tuple[str, str]:
    """Split ``"<template-name>-<template-id>"`` into its two parts.

    ESPHome ids look like ``cover-garage_door``; only the first ``-``
    separates the domain from the object id.
    """
    template_name, sep, template_id = device_id.partition("-")
    if not sep or not template_name or not template_id:
        raise ValueError(f"device id must look like '<template-name>-<template-id>', got {device_id!r}")
    return template_name, template_id


class ReportedState(enum.StrEnum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


class ReportedOperation(enum.StrEnum):
    IDLE = "IDLE"
    OPENING = "OPENING"
    CLOSING = "CLOSING"


class DeviceEvent(GarageBaseModel):
    """A decoded ``state`` event for the garage door cover entity."""

    device_id: str = Field(alias="id")
    reported_state: ReportedState = Field(alias="state")
    raw_value: float = Field(default=0.0, alias="value")
    reported_operation: ReportedOperation = Field(default=ReportedOperation.IDLE, alias="current_operation")

    @field_validator("device_id")
    @classmethod
    def _validate_device_id(cls, value: str) -> str:
        value = value.strip()
        split_device_id(value)
        return value

    @property
    def template_name(self) -> str:
        return split_device_id(self.device_id)[0]

    @property
    def template_id(self) -> str:
        return split_device_id(self.device_id)[1]

    @property
    def is_closed(self) -> bool:
        return self.reported_state is ReportedState.CLOSED

    @classmethod
    def from_payload(cls, data: str) -> DeviceEvent:
        """Decode the JSON body of a ``state`` stream event.

        Raises
        ------
        MalformedEventError
            If *data* is not JSON or does not describe a cover entity.
        """
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(f"state payload is not JSON: {data[:64]!r}", payload=data) from exc
        if not isinstance(payload, dict):
            raise MalformedEventError(f"state payload is not an object: {data[:64]!r}", payload=data)
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise MalformedEventError(
                f"state payload is not a cover event ({exc.error_count()} validation errors): {data[:64]!r}",
                payload=data,
            ) from exc


class StreamEventKind(enum.StrEnum):
    STATE = "state"
    HEARTBEAT = "heartbeat"
    LOG = "log"
    #: Terminal; nothing follows it on the same handle.
    CLOSED = "closed"


class StreamEvent(BaseModel):
    """A tagged event surfaced by the event stream client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: StreamEventKind
    data: str = ""
    error: str | None = None

    @classmethod
    def terminal(cls, error: str | None = None) -> StreamEvent:
        return cls(kind=StreamEventKind.CLOSED, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.kind is StreamEventKind.CLOSED
