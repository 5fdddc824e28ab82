"""pyespgarage - Async garage door accessory for ESPHome event streams."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyespgarage")
except PackageNotFoundError:
    __version__ = "0+local"
from pyespgarage.accessory import AccessoryInfo, GarageDoorAccessory
from pyespgarage.commands import CommandDispatcher
from pyespgarage.config import GarageDoorConfig
from pyespgarage.exceptions import (
    CommandFailedError,
    DeviceUnknownError,
    GarageConfigError,
    GarageError,
    GarageTransportError,
    MalformedEventError,
)
from pyespgarage.models import (
    ConnectionState,
    DeviceEvent,
    DoorDirection,
    DoorPosition,
    PendingCommand,
    ReportedOperation,
    ReportedState,
    RetryBudget,
)
from pyespgarage.state import DoorStateEngine
from pyespgarage.supervisor import ConnectionSupervisor

__all__ = [
    "__version__",
    "AccessoryInfo",
    "CommandDispatcher",
    "CommandFailedError",
    "ConnectionState",
    "ConnectionSupervisor",
    "DeviceEvent",
    "DeviceUnknownError",
    "DoorDirection",
    "DoorPosition",
    "DoorStateEngine",
    "GarageConfigError",
    "GarageDoorAccessory",
    "GarageDoorConfig",
    "GarageError",
    "GarageTransportError",
    "MalformedEventError",
    "PendingCommand",
    "ReportedOperation",
    "ReportedState",
    "RetryBudget",
]
