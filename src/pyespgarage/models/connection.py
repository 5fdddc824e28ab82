"""Connection-state and retry-budget models owned by the supervisor."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ConnectionState(enum.StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    #: Stream opened, no heartbeat seen yet.
    CONNECTED_UNCONFIRMED = "connected_unconfirmed"
    LIVE = "live"

    @property
    def is_active(self) -> bool:
        """Whether a connection attempt or connection is in progress."""
        return self is not ConnectionState.DISCONNECTED


@dataclass
class RetryBudget:
    """Reconnect attempts left before the supervisor gives up.

    ``max_attempts=None`` is an unbounded budget that never runs out.
    """

    max_attempts: int | None
    backoff: float
    attempts_remaining: int | None = field(init=False)

    def __post_init__(self) -> None:
        self.attempts_remaining = self.max_attempts

    @property
    def exhausted(self) -> bool:
        return self.attempts_remaining is not None and self.attempts_remaining <= 0

    def consume(self) -> bool:
        """Spend one attempt. Returns ``False`` if the budget was already empty."""
        if self.attempts_remaining is None:
            return True
        if self.attempts_remaining <= 0:
            return False
        self.attempts_remaining -= 1
        return True

    def reset(self) -> None:
        self.attempts_remaining = self.max_attempts

    def describe(self) -> str:
        if self.attempts_remaining is None:
            return "unbounded"
        return f"{self.attempts_remaining}/{self.max_attempts} left"
