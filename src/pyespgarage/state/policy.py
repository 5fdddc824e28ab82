"""Deterministic reconciliation policy.

This module contains no timers or I/O. Given what the engine believes and
what the device reported, it decides what the report is allowed to change.
"""

from __future__ import annotations

import enum

from pyespgarage.models.door import DoorPosition, PendingCommand
from pyespgarage.models.events import DeviceEvent


class Reconciliation(enum.StrEnum):
    #: No command in flight: the change came from a wall button or remote.
    EXTERNAL_CHANGE = "external_change"
    #: A CLOSED report ends the pending command early.
    PREEMPT = "preempt"
    #: An OPEN report while a command is in flight; the deadline owns it.
    IGNORE = "ignore"


def reported_position(event: DeviceEvent) -> DoorPosition:
    """Collapse the device report into a terminal position."""
    return DoorPosition.CLOSED if event.is_closed else DoorPosition.OPEN


def reconcile(pending: PendingCommand | None, reported: DoorPosition) -> Reconciliation:
    """Decide how a debounced device report interacts with a pending command.

    Policy:
    - No pending command: the report is authoritative.
    - Pending command: only CLOSED is trusted; OPEN is left to the settle
      deadline.
    """
    if pending is None:
        return Reconciliation.EXTERNAL_CHANGE
    if reported is DoorPosition.CLOSED:
        return Reconciliation.PREEMPT
    return Reconciliation.IGNORE
