"""Single-attempt event stream client for the ESPHome ``/events`` endpoint.

This layer only opens, reads, and closes one connection. Reconnect and
liveness policy live in :mod:`pyespgarage.supervisor`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

import aiohttp

from pyespgarage._constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_PORT,
    EVENTS_PATH,
    SSE_HEARTBEATS,
    SSE_LOG,
    SSE_STATE,
    USER_AGENT,
)
from pyespgarage._sse import ServerSentEvent, SseParser
from pyespgarage.exceptions import GarageTransportError
from pyespgarage.models.events import StreamEvent, StreamEventKind

_logger = logging.getLogger(__name__)


class StreamHandle(Protocol):
    """An open stream: async-iterates tagged events, ends with one CLOSED event."""

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[StreamEvent]: ...


class EventStreamSource(Protocol):
    """Structural interface the supervisor opens connections through.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`EventStreamClient`) concrete.
    """

    @property
    def url(self) -> str: ...

    async def open(self) -> StreamHandle: ...


def to_stream_event(sse: ServerSentEvent) -> StreamEvent | None:
    """Tag a server-sent event, or return ``None`` for names we do not track."""
    if sse.event == SSE_STATE:
        return StreamEvent(kind=StreamEventKind.STATE, data=sse.data)
    if sse.event in SSE_HEARTBEATS:
        return StreamEvent(kind=StreamEventKind.HEARTBEAT, data=sse.data)
    if sse.event == SSE_LOG:
        return StreamEvent(kind=StreamEventKind.LOG, data=sse.data)
    _logger.debug("Ignoring stream event %r", sse.event)
    return None


class EventStreamHandle:
    """An open ``text/event-stream`` response."""

    def __init__(self, response: aiohttp.ClientResponse, url: str) -> None:
        self._response = response
        self._url = url
        self._closed = False
        self._iterated = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        """Close the underlying response. Safe to call any number of times."""
        if self._closed:
            _logger.debug("Event stream %s already closed", self._url)
            return
        self._closed = True
        # Wake a pending read before dropping the connection.
        self._response.content.feed_eof()
        self._response.close()
        _logger.debug("Event stream %s closed", self._url)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._iterated:
            raise RuntimeError("an event stream handle can only be iterated once")
        self._iterated = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        parser = SseParser()
        error: str | None = None
        try:
            async for raw_line in self._response.content:
                if self._closed:
                    break
                sse = parser.feed_line(raw_line.decode("utf-8", errors="replace"))
                if sse is None:
                    continue
                event = to_stream_event(sse)
                if event is not None:
                    yield event
            else:
                if not self._closed:
                    error = "stream ended by device"
        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as exc:
            if not self._closed:
                error = f"stream read failed: {exc!r}"

        self.close()
        yield StreamEvent.terminal(error)


class EventStreamClient:
    """Opens the device's ``/events`` stream over a shared aiohttp session."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._http = http_session
        self._url = f"http://{host}:{port}{EVENTS_PATH}"
        # No total/read timeout: the stream is expected to stay open for days.
        self._timeout = aiohttp.ClientTimeout(total=None, connect=connect_timeout, sock_read=None)

    @property
    def url(self) -> str:
        return self._url

    async def open(self) -> EventStreamHandle:
        """Open the stream.

        Raises
        ------
        GarageTransportError
            On network failure or a non-200 response.
        """
        headers = {
            "accept": "text/event-stream",
            "cache-control": "no-cache",
            "user-agent": USER_AGENT,
        }
        _logger.debug("GET %s", self._url)
        try:
            response = await self._http.get(self._url, headers=headers, timeout=self._timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise GarageTransportError(f"Cannot open event stream {self._url}: {exc!r}", url=self._url) from exc

        if response.status != 200:
            response.close()
            raise GarageTransportError(
                f"HTTP {response.status} from {self._url}",
                status_code=response.status,
                url=self._url,
            )
        _logger.info("Event source started at %s", self._url)
        return EventStreamHandle(response, self._url)
