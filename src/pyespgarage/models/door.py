"""Door position, command direction, and pending-command models."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, model_validator


class DoorPosition(enum.StrEnum):
    """Believed position of the door, as exposed to the accessory layer."""

    CLOSED = "closed"
    OPEN = "open"
    OPENING = "opening"
    CLOSING = "closing"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (DoorPosition.OPEN, DoorPosition.CLOSED)


class DoorDirection(enum.StrEnum):
    """Command direction. The value is the last path segment of the command URL."""

    OPEN = "open"
    CLOSE = "close"

    @property
    def terminal_position(self) -> DoorPosition:
        """Position the door settles in once the command completes."""
        return DoorPosition.OPEN if self is DoorDirection.OPEN else DoorPosition.CLOSED

    @property
    def transitional_position(self) -> DoorPosition:
        """Position shown while the door is travelling."""
        return DoorPosition.OPENING if self is DoorDirection.OPEN else DoorPosition.CLOSING


class PendingCommand(BaseModel):
    """A command awaiting confirmation or its settle deadline.

    Timestamps are scheduler time (``loop.time()``), not wall-clock time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    direction: DoorDirection
    issued_at: float
    deadline: float

    @model_validator(mode="after")
    def _deadline_after_issue(self) -> PendingCommand:
        if self.deadline < self.issued_at:
            raise ValueError("deadline must not precede issued_at")
        return self

    @property
    def target(self) -> DoorPosition:
        return self.direction.terminal_position


class HapCurrentDoorState(enum.IntEnum):
    """HomeKit ``CurrentDoorState`` characteristic values."""

    OPEN = 0
    CLOSED = 1
    OPENING = 2
    CLOSING = 3
    STOPPED = 4


class HapTargetDoorState(enum.IntEnum):
    """HomeKit ``TargetDoorState`` characteristic values."""

    OPEN = 0
    CLOSED = 1
