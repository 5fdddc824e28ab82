"""Data models for the garage door stream, commands, and connection state."""

from pyespgarage.models._base import GarageBaseModel
from pyespgarage.models.connection import ConnectionState, RetryBudget
from pyespgarage.models.door import (
    DoorDirection,
    DoorPosition,
    HapCurrentDoorState,
    HapTargetDoorState,
    PendingCommand,
)
from pyespgarage.models.events import (
    DeviceEvent,
    ReportedOperation,
    ReportedState,
    StreamEvent,
    StreamEventKind,
    split_device_id,
)

__all__ = [
    "ConnectionState",
    "DeviceEvent",
    "DoorDirection",
    "DoorPosition",
    "GarageBaseModel",
    "HapCurrentDoorState",
    "HapTargetDoorState",
    "PendingCommand",
    "ReportedOperation",
    "ReportedState",
    "RetryBudget",
    "StreamEvent",
    "StreamEventKind",
    "split_device_id",
]
