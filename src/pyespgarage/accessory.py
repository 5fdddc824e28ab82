"""High-level garage door accessory for smart-home integrations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from pyespgarage._constants import MANUFACTURER, MODEL, SERIAL_NUMBER
from pyespgarage._stream import EventStreamClient, EventStreamSource
from pyespgarage._timers import Scheduler
from pyespgarage.commands import CommandDispatcher, CommandSender
from pyespgarage.config import GarageDoorConfig
from pyespgarage.exceptions import GarageError
from pyespgarage.models.connection import ConnectionState
from pyespgarage.models.door import DoorDirection, DoorPosition, HapCurrentDoorState, HapTargetDoorState
from pyespgarage.state.engine import DoorStateEngine, PositionListener
from pyespgarage.supervisor import ConnectionSupervisor

_logger = logging.getLogger(__name__)

_HAP_CURRENT: dict[DoorPosition, HapCurrentDoorState] = {
    DoorPosition.OPEN: HapCurrentDoorState.OPEN,
    DoorPosition.CLOSED: HapCurrentDoorState.CLOSED,
    DoorPosition.OPENING: HapCurrentDoorState.OPENING,
    DoorPosition.CLOSING: HapCurrentDoorState.CLOSING,
    # HomeKit has no "unknown"; show closed until the first report.
    DoorPosition.UNKNOWN: HapCurrentDoorState.CLOSED,
}

_HAP_TARGET_TO_DIRECTION: dict[HapTargetDoorState, DoorDirection] = {
    HapTargetDoorState.OPEN: DoorDirection.OPEN,
    HapTargetDoorState.CLOSED: DoorDirection.CLOSE,
}


def to_hap_current(position: DoorPosition) -> HapCurrentDoorState:
    return _HAP_CURRENT[position]


def to_hap_target(position: DoorPosition) -> HapTargetDoorState:
    if position in (DoorPosition.OPEN, DoorPosition.OPENING):
        return HapTargetDoorState.OPEN
    return HapTargetDoorState.CLOSED


@dataclass(frozen=True)
class AccessoryInfo:
    """Static accessory information advertised to the ecosystem."""

    name: str
    manufacturer: str = MANUFACTURER
    model: str = MODEL
    serial_number: str = SERIAL_NUMBER


class GarageDoorAccessory:
    """A garage door backed by an ESPHome device.

    Usage::

        async with GarageDoorAccessory(config) as door:
            door.subscribe(lambda current, target: ...)
            await door.request_transition(DoorDirection.OPEN)

    Only four operations reach the door state: :attr:`current_position`,
    :attr:`target_position`, :meth:`subscribe`, and
    :meth:`request_transition`. The HomeKit helpers are thin mappings over
    them.
    """

    def __init__(
        self,
        config: GarageDoorConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        source: EventStreamSource | None = None,
        dispatcher: CommandSender | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._source = source
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._engine: DoorStateEngine | None = None
        self._supervisor: ConnectionSupervisor | None = None
        self._remove_listener: Callable[[], None] | None = None
        self.info = AccessoryInfo(name=config.name)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GarageDoorAccessory:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Wire the stream and command transport and start supervising the stream.

        The door engine is created on the first start and kept for the
        accessory's lifetime, so positions and subscribers survive a restart.
        """
        if self._supervisor is None:
            self._build()
        assert self._supervisor is not None  # noqa: S101
        self._supervisor.start()

    async def stop(self) -> None:
        """Stop the stream, cancel timers, and close an owned HTTP session."""
        if self._supervisor is not None:
            await self._supervisor.stop()
        if self._engine is not None:
            self._engine.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            # Transport built on the closed session is rebuilt by the next start().
            self._teardown()

    def _build(self) -> None:
        config = self._config
        source = self._source or EventStreamClient(
            self._owned_session(),
            config.host,
            config.port,
            connect_timeout=config.connect_timeout,
        )
        dispatcher = self._dispatcher or CommandDispatcher(
            self._owned_session(),
            config.host,
            config.port,
            timeout=config.command_timeout,
        )
        if self._engine is None:
            self._engine = DoorStateEngine(
                dispatcher,
                opening_time=config.opening_time,
                debounce=config.debounce,
                scheduler=self._scheduler,
            )
        else:
            self._engine.dispatcher = dispatcher
        supervisor = ConnectionSupervisor.from_config(config, source)
        self._remove_listener = supervisor.add_listener(
            on_event=self._engine.on_device_event,
            on_state_change=self._on_connection_state,
        )
        self._supervisor = supervisor

    def _owned_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    def _teardown(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self._supervisor = None

    def _on_connection_state(self, state: ConnectionState) -> None:
        if self._engine is not None:
            self._engine.on_connection_state(state)
        if state is ConnectionState.LIVE:
            _logger.info("%s: connection to ESP initialized", self._config.name)
        elif state is ConnectionState.DISCONNECTED:
            _logger.info("%s: disconnected from ESP", self._config.name)

    def _require_engine(self) -> DoorStateEngine:
        if self._engine is None:
            raise GarageError("Accessory not started. Use 'async with GarageDoorAccessory(...) as door:'")
        return self._engine

    # ------------------------------------------------------------------
    # Door state (the four upstream operations)
    # ------------------------------------------------------------------

    @property
    def current_position(self) -> DoorPosition:
        return self._require_engine().current

    @property
    def target_position(self) -> DoorPosition:
        return self._require_engine().target

    def subscribe(self, listener: PositionListener) -> Callable[[], None]:
        return self._require_engine().subscribe(listener)

    async def request_transition(self, direction: DoorDirection) -> bool:
        return await self._require_engine().request_transition(direction)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        if self._supervisor is None:
            return ConnectionState.DISCONNECTED
        return self._supervisor.state

    @property
    def device_id(self) -> str | None:
        return self._engine.device_id if self._engine is not None else None

    # ------------------------------------------------------------------
    # HomeKit characteristic mapping
    # ------------------------------------------------------------------

    @property
    def current_door_state(self) -> HapCurrentDoorState:
        return to_hap_current(self.current_position)

    @property
    def target_door_state(self) -> HapTargetDoorState:
        return to_hap_target(self.target_position)

    async def set_target_door_state(self, value: int) -> bool:
        """Handle a ``TargetDoorState`` write from the ecosystem.

        Raises
        ------
        ValueError
            If *value* is not a ``TargetDoorState`` code.
        """
        try:
            direction = _HAP_TARGET_TO_DIRECTION[HapTargetDoorState(value)]
        except ValueError:
            _logger.error("Unknown action %s", value)
            raise ValueError(f"unknown TargetDoorState value {value!r}") from None
        return await self.request_transition(direction)
