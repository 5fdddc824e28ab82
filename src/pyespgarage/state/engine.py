"""Door state engine.

Owns the believed current/target position and the single pending command.
Two inputs feed it: :meth:`DoorStateEngine.request_transition` for locally
issued commands and :meth:`DoorStateEngine.on_device_event` for state
events pushed by the device. Everything runs on one event loop, so state
is only ever mutated between suspension points.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pyespgarage._constants import DEFAULT_DEBOUNCE, DEFAULT_OPENING_TIME
from pyespgarage._timers import OneShotTimer, Scheduler
from pyespgarage.commands import CommandSender
from pyespgarage.exceptions import DeviceUnknownError
from pyespgarage.models.connection import ConnectionState
from pyespgarage.models.door import DoorDirection, DoorPosition, PendingCommand
from pyespgarage.models.events import DeviceEvent
from pyespgarage.state.policy import Reconciliation, reconcile, reported_position

_logger = logging.getLogger(__name__)

PositionListener = Callable[[DoorPosition, DoorPosition], None]
"""Called with ``(current, target)`` after either value changes."""


class DoorStateEngine:
    """Reconciles commands and device reports into one door position.

    Invariants:

    * at most one :class:`PendingCommand`, and its deadline timer is
      active exactly while it exists;
    * once the pending command resolves, ``current == target``;
    * device reports only touch positions while the connection is LIVE.
    """

    def __init__(
        self,
        dispatcher: CommandSender,
        *,
        opening_time: float = DEFAULT_OPENING_TIME,
        debounce: float = DEFAULT_DEBOUNCE,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._opening_time = opening_time
        self._debounce = debounce
        self._current = DoorPosition.UNKNOWN
        self._target = DoorPosition.UNKNOWN
        self._device_id: str | None = None
        self._pending: PendingCommand | None = None
        self._connection_state = ConnectionState.DISCONNECTED
        self._buffered: DeviceEvent | None = None
        self._deadline_timer = OneShotTimer("deadline", self._on_deadline, scheduler=scheduler)
        self._debounce_timer = OneShotTimer("debounce", self._flush_debounced, scheduler=scheduler)
        self._listeners: list[PositionListener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def current(self) -> DoorPosition:
        return self._current

    @property
    def target(self) -> DoorPosition:
        return self._target

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def pending(self) -> PendingCommand | None:
        return self._pending

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def dispatcher(self) -> CommandSender:
        return self._dispatcher

    @dispatcher.setter
    def dispatcher(self, dispatcher: CommandSender) -> None:
        """Swap the command transport; positions and listeners are kept."""
        self._dispatcher = dispatcher

    def subscribe(self, listener: PositionListener) -> Callable[[], None]:
        """Register a position listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def request_transition(self, direction: DoorDirection) -> bool:
        """Move the door towards *direction*.

        The optimistic transition is applied before the request is sent and
        is not rolled back if the device rejects it; the settle deadline
        governs the outcome either way.

        Returns
        -------
        bool
            Whether the device acknowledged the command.

        Raises
        ------
        DeviceUnknownError
            If no device event has been observed yet. Nothing is changed.
        """
        device_id = self._device_id
        if device_id is None:
            raise DeviceUnknownError("No state event received from the device yet; its id is unknown")

        superseded = self._pending
        if superseded is not None:
            _logger.debug("Command %s supersedes pending %s", direction.value, superseded.direction.value)
        # A report buffered before this command describes the old movement.
        self._drop_buffered()

        issued_at = self._deadline_timer.now()
        deadline = self._deadline_timer.start(self._opening_time)
        self._pending = PendingCommand(direction=direction, issued_at=issued_at, deadline=deadline)
        self._set_positions(direction.transitional_position, direction.terminal_position)

        acknowledged = await self._dispatcher.send(device_id, direction)
        if not acknowledged:
            _logger.warning(
                "Command %s was not acknowledged by %s; door settles at the deadline",
                direction.value,
                device_id,
            )
        return acknowledged

    def _on_deadline(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        terminal = pending.target
        _logger.debug("Deadline reached for %s, update door state to %s", pending.direction.value, terminal)
        self._set_positions(terminal, terminal)

    # ------------------------------------------------------------------
    # Device reports
    # ------------------------------------------------------------------

    def on_connection_state(self, state: ConnectionState) -> None:
        """Track connectivity; leaving LIVE discards a buffered report."""
        self._connection_state = state
        if state is not ConnectionState.LIVE:
            self._drop_buffered()

    def on_device_event(self, event: DeviceEvent) -> None:
        """Record the device identity and, while LIVE, queue the report."""
        if event.device_id != self._device_id:
            if self._device_id is None:
                _logger.debug("Device identity learned: %s", event.device_id)
            else:
                _logger.info("Device identity changed from %s to %s", self._device_id, event.device_id)
            self._device_id = event.device_id

        if self._connection_state is not ConnectionState.LIVE:
            _logger.debug("Ignoring state event while %s", self._connection_state.value)
            return

        self._buffered = event
        self._debounce_timer.start(self._debounce)

    def _flush_debounced(self) -> None:
        event, self._buffered = self._buffered, None
        if event is None or self._connection_state is not ConnectionState.LIVE:
            return
        self._apply(event)

    def _apply(self, event: DeviceEvent) -> None:
        reported = reported_position(event)
        action = reconcile(self._pending, reported)
        _logger.debug("Device reported %s (%s): %s", reported, event.reported_operation, action)

        if action is Reconciliation.EXTERNAL_CHANGE:
            self._set_positions(reported, reported)
        elif action is Reconciliation.PREEMPT:
            self._deadline_timer.cancel()
            self._pending = None
            self._set_positions(reported, reported)

    def _drop_buffered(self) -> None:
        self._debounce_timer.cancel()
        self._buffered = None

    # ------------------------------------------------------------------
    # Lifecycle / notification
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel every timer.

        A pending command is settled at its end position right away, so
        ``current == target`` holds after shutdown.
        """
        self._drop_buffered()
        self._deadline_timer.cancel()
        pending, self._pending = self._pending, None
        if pending is not None:
            _logger.debug("Closing with %s pending, settle door state to %s", pending.direction.value, pending.target)
            self._set_positions(pending.target, pending.target)

    def _set_positions(self, current: DoorPosition, target: DoorPosition) -> None:
        if (current, target) == (self._current, self._target):
            return
        _logger.debug("Door state: current %s -> %s, target %s -> %s", self._current, current, self._target, target)
        self._current = current
        self._target = target
        for listener in list(self._listeners):
            try:
                listener(current, target)
            except Exception:
                _logger.warning("Position listener failed", exc_info=True)
