from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from aiohttp import test_utils, web

from pyespgarage.accessory import AccessoryInfo, GarageDoorAccessory, to_hap_current, to_hap_target
from pyespgarage.config import GarageDoorConfig
from pyespgarage.exceptions import GarageError
from pyespgarage.models.connection import ConnectionState
from pyespgarage.models.door import DoorDirection, DoorPosition, HapCurrentDoorState, HapTargetDoorState
from pyespgarage.models.events import StreamEvent, StreamEventKind

_CLOSED_PAYLOAD = '{"id":"cover-garage_door","state":"CLOSED","value":0.0,"current_operation":"IDLE"}'


class _Handle:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(StreamEvent.terminal())

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self.queue.get()
            yield event
            if event.is_terminal:
                return


class _Source:
    url = "http://garage.test:80/events"

    def __init__(self) -> None:
        self.handles: list[_Handle] = []

    async def open(self) -> _Handle:
        handle = _Handle()
        self.handles.append(handle)
        return handle


class _Dispatcher:
    def __init__(self) -> None:
        self.calls: list[tuple[str, DoorDirection]] = []

    async def send(self, device_id: str, direction: DoorDirection) -> bool:
        self.calls.append((device_id, direction))
        return True


class _TimerHandle:
    def __init__(self, when: float, callback: Callable[..., Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _ManualClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[_TimerHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _TimerHandle:
        handle = _TimerHandle(self.now + delay, lambda: callback(*args))
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for handle in sorted(self.handles, key=lambda h: h.when):
            if not handle.cancelled and handle.when <= self.now:
                handle.cancelled = True
                handle.callback()


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def _accessory() -> tuple[GarageDoorAccessory, _Source, _Dispatcher, _ManualClock]:
    source = _Source()
    dispatcher = _Dispatcher()
    clock = _ManualClock()
    config = GarageDoorConfig(host="garage.test", name="Garage", opening_time=12.0)
    door = GarageDoorAccessory(config, source=source, dispatcher=dispatcher, scheduler=clock)
    return door, source, dispatcher, clock


async def _go_live(door: GarageDoorAccessory, source: _Source, clock: _ManualClock) -> None:
    await _wait_for(lambda: source.handles != [])
    handle = source.handles[-1]
    handle.queue.put_nowait(StreamEvent(kind=StreamEventKind.HEARTBEAT))
    handle.queue.put_nowait(StreamEvent(kind=StreamEventKind.STATE, data=_CLOSED_PAYLOAD))
    await _wait_for(lambda: door.device_id is not None)
    clock.advance(0.5)


def test_hap_current_mapping() -> None:
    assert to_hap_current(DoorPosition.OPEN) is HapCurrentDoorState.OPEN
    assert to_hap_current(DoorPosition.CLOSED) is HapCurrentDoorState.CLOSED
    assert to_hap_current(DoorPosition.OPENING) is HapCurrentDoorState.OPENING
    assert to_hap_current(DoorPosition.CLOSING) is HapCurrentDoorState.CLOSING
    assert to_hap_current(DoorPosition.UNKNOWN) is HapCurrentDoorState.CLOSED


def test_hap_target_mapping() -> None:
    assert to_hap_target(DoorPosition.OPEN) is HapTargetDoorState.OPEN
    assert to_hap_target(DoorPosition.OPENING) is HapTargetDoorState.OPEN
    assert to_hap_target(DoorPosition.CLOSED) is HapTargetDoorState.CLOSED
    assert to_hap_target(DoorPosition.CLOSING) is HapTargetDoorState.CLOSED
    assert to_hap_target(DoorPosition.UNKNOWN) is HapTargetDoorState.CLOSED


def test_accessory_info_defaults() -> None:
    door, _source, _dispatcher, _clock = _accessory()
    assert door.info == AccessoryInfo(name="Garage", manufacturer="ESPHome", model="Shelly 1", serial_number="None")


def test_not_started() -> None:
    door, _source, _dispatcher, _clock = _accessory()

    with pytest.raises(GarageError):
        _ = door.current_position
    assert door.connection_state is ConnectionState.DISCONNECTED
    assert door.device_id is None


@pytest.mark.asyncio
async def test_unknown_position_is_reported_closed_before_first_event() -> None:
    door, _source, _dispatcher, _clock = _accessory()

    async with door:
        assert door.current_position is DoorPosition.UNKNOWN
        assert door.current_door_state is HapCurrentDoorState.CLOSED
        assert door.target_door_state is HapTargetDoorState.CLOSED


@pytest.mark.asyncio
async def test_set_target_door_state_drives_the_engine() -> None:
    door, source, dispatcher, clock = _accessory()
    updates: list[tuple[DoorPosition, DoorPosition]] = []

    async with door:
        door.subscribe(lambda current, target: updates.append((current, target)))
        await _go_live(door, source, clock)
        assert door.connection_state is ConnectionState.LIVE
        assert door.current_door_state is HapCurrentDoorState.CLOSED

        assert await door.set_target_door_state(0) is True
        assert dispatcher.calls == [("cover-garage_door", DoorDirection.OPEN)]
        assert door.current_door_state is HapCurrentDoorState.OPENING
        assert door.target_door_state is HapTargetDoorState.OPEN

        clock.advance(12.0)
        assert door.current_door_state is HapCurrentDoorState.OPEN

        assert await door.set_target_door_state(HapTargetDoorState.CLOSED) is True
        assert door.current_door_state is HapCurrentDoorState.CLOSING

    assert updates[0] == (DoorPosition.CLOSED, DoorPosition.CLOSED)
    # Stopping settles the CLOSE that was still in flight.
    assert updates[-2:] == [(DoorPosition.CLOSING, DoorPosition.CLOSED), (DoorPosition.CLOSED, DoorPosition.CLOSED)]
    assert source.handles[0].closed
    assert door.connection_state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_invalid_target_door_state() -> None:
    door, source, dispatcher, clock = _accessory()

    async with door:
        await _go_live(door, source, clock)
        with pytest.raises(ValueError):
            await door.set_target_door_state(4)

    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_request_transition_passthrough() -> None:
    door, source, dispatcher, clock = _accessory()

    async with door:
        await _go_live(door, source, clock)
        await door.request_transition(DoorDirection.CLOSE)
        assert door.target_position is DoorPosition.CLOSED
        assert door.current_position is DoorPosition.CLOSING

    assert dispatcher.calls == [("cover-garage_door", DoorDirection.CLOSE)]


# ------------------------------------------------------------------
# Production wiring against a local device server
# ------------------------------------------------------------------


def _device_app(commands: list[tuple[str, str, str]], release: asyncio.Event) -> web.Application:
    async def events(request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(headers={"content-type": "text/event-stream"})
        await response.prepare(request)
        try:
            await response.write(b"event: ping\ndata: {}\n\n")
            await response.write(f"event: state\ndata: {_CLOSED_PAYLOAD}\n\n".encode())
            while not release.is_set():
                await asyncio.sleep(0.05)
                await response.write(b"event: ping\ndata: {}\n\n")
        except ConnectionResetError:
            pass
        return response

    async def command(request: web.Request) -> web.Response:
        info = request.match_info
        commands.append((info["name"], info["id"], info["action"]))
        return web.Response(text="")

    app = web.Application()
    app.router.add_get("/events", events)
    app.router.add_post("/{name}/{id}/{action}", command)
    return app


@pytest.mark.asyncio
async def test_owned_session_end_to_end_and_restart() -> None:
    commands: list[tuple[str, str, str]] = []
    release = asyncio.Event()
    updates: list[tuple[DoorPosition, DoorPosition]] = []

    async with test_utils.TestServer(_device_app(commands, release)) as server:
        config = GarageDoorConfig(host=server.host, port=server.port, debounce=0.01, opening_time=0.2)
        door = GarageDoorAccessory(config)

        async with door:
            door.subscribe(lambda current, target: updates.append((current, target)))
            await _wait_for(lambda: door.current_position is DoorPosition.CLOSED)
            assert door.connection_state is ConnectionState.LIVE
            assert door.device_id == "cover-garage_door"

            assert await door.request_transition(DoorDirection.OPEN) is True
            assert commands == [("cover", "garage_door", "open")]
            await _wait_for(lambda: door.current_position is DoorPosition.OPEN)
            session = door._http_session  # type: ignore[attr-defined]

        assert session is not None
        assert session.closed
        assert door.connection_state is ConnectionState.DISCONNECTED
        # State and subscribers outlive the owned session.
        assert door.current_position is DoorPosition.OPEN
        assert updates[-1] == (DoorPosition.OPEN, DoorPosition.OPEN)

        async with door:
            # The device reports CLOSED again on the new connection.
            await _wait_for(lambda: updates[-1] == (DoorPosition.CLOSED, DoorPosition.CLOSED))
            assert door.connection_state is ConnectionState.LIVE
            assert await door.request_transition(DoorDirection.OPEN) is True
            assert door._http_session is not session  # type: ignore[attr-defined]

        release.set()

    assert commands == [("cover", "garage_door", "open"), ("cover", "garage_door", "open")]
