"""Event stream client tests against a local aiohttp server."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest
from aiohttp import test_utils, web

from pyespgarage._stream import EventStreamClient
from pyespgarage.exceptions import GarageTransportError
from pyespgarage.models.events import StreamEvent, StreamEventKind

_STATE = b'event: state\ndata: {"id":"cover-garage_door","state":"CLOSED","value":0.0}\n\n'


async def _sse_response(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse(headers={"content-type": "text/event-stream"})
    await response.prepare(request)
    return response


def _app(handler: object) -> web.Application:
    app = web.Application()
    app.router.add_get("/events", handler)  # type: ignore[arg-type]
    return app


@pytest.mark.asyncio
async def test_stream_yields_tagged_events_then_terminal() -> None:
    seen_headers: list[str] = []

    async def handler(request: web.Request) -> web.StreamResponse:
        seen_headers.append(request.headers.get("accept", ""))
        response = await _sse_response(request)
        await response.write(b"event: ping\ndata: {}\n\n")
        await response.write(_STATE)
        await response.write(b"event: log\ndata: [D][cover:076]: 'Garage Door' - Publishing\n\n")
        await response.write(b"event: sensor_update\ndata: {}\n\n")
        return response

    async with test_utils.TestServer(_app(handler)) as server, aiohttp.ClientSession() as session:
        client = EventStreamClient(session, server.host, server.port)
        handle = await client.open()
        events: list[StreamEvent] = [event async for event in handle]

    assert [e.kind for e in events] == [
        StreamEventKind.HEARTBEAT,
        StreamEventKind.STATE,
        StreamEventKind.LOG,
        StreamEventKind.CLOSED,
    ]
    assert '"cover-garage_door"' in events[1].data
    assert events[-1].error == "stream ended by device"
    assert handle.closed
    assert seen_headers == ["text/event-stream"]


@pytest.mark.asyncio
async def test_local_close_is_idempotent_and_not_an_error() -> None:
    release = asyncio.Event()

    async def handler(request: web.Request) -> web.StreamResponse:
        response = await _sse_response(request)
        await response.write(b"event: ping\ndata: {}\n\n")
        await asyncio.wait_for(release.wait(), timeout=5)
        return response

    async with test_utils.TestServer(_app(handler)) as server, aiohttp.ClientSession() as session:
        handle = await EventStreamClient(session, server.host, server.port).open()
        iterator = handle.__aiter__()

        first = await iterator.__anext__()
        handle.close()
        handle.close()
        last = await iterator.__anext__()
        release.set()

        with pytest.raises(StopAsyncIteration):
            await iterator.__anext__()

    assert first.kind is StreamEventKind.HEARTBEAT
    assert last.is_terminal
    assert last.error is None


@pytest.mark.asyncio
async def test_handle_can_only_be_iterated_once() -> None:
    async def handler(request: web.Request) -> web.StreamResponse:
        return await _sse_response(request)

    async with test_utils.TestServer(_app(handler)) as server, aiohttp.ClientSession() as session:
        handle = await EventStreamClient(session, server.host, server.port).open()
        events = [event async for event in handle]
        with pytest.raises(RuntimeError):
            handle.__aiter__()

    assert len(events) == 1
    assert events[0].is_terminal


@pytest.mark.asyncio
async def test_non_200_raises_transport_error() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=503, text="busy")

    async with test_utils.TestServer(_app(handler)) as server, aiohttp.ClientSession() as session:
        client = EventStreamClient(session, server.host, server.port)
        with pytest.raises(GarageTransportError) as exc_info:
            await client.open()

    assert exc_info.value.status_code == 503
    assert exc_info.value.url == client.url


@pytest.mark.asyncio
async def test_connection_refused_raises_transport_error() -> None:
    async with aiohttp.ClientSession() as session:
        client = EventStreamClient(session, "127.0.0.1", test_utils.unused_port(), connect_timeout=2.0)
        with pytest.raises(GarageTransportError) as exc_info:
            await client.open()

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, aiohttp.ClientError)


def test_url() -> None:
    client = EventStreamClient(None, "garage.local", 8080)  # type: ignore[arg-type]
    assert client.url == "http://garage.local:8080/events"
