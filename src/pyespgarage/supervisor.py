"""Connection supervisor for the device event stream.

Owns:
- the single open stream handle and the task that supervises it
- the liveness timer (heartbeat watchdog)
- the retry budget and fixed-interval reconnect policy
- decoding ``state`` payloads into :class:`DeviceEvent` for listeners

Each connection has one reader task pumping events into an
``asyncio.Queue``; the supervising loop is the only consumer. The liveness
timer posts a terminal event onto the same queue, so a connection always
ends through one path and exactly one reconnect follows.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from pyespgarage._constants import DEFAULT_LIVENESS_TIMEOUT, DEFAULT_RETRY_BACKOFF
from pyespgarage._stream import EventStreamSource, StreamHandle
from pyespgarage._timers import OneShotTimer
from pyespgarage.config import GarageDoorConfig
from pyespgarage.exceptions import GarageTransportError, MalformedEventError
from pyespgarage.models.connection import ConnectionState, RetryBudget
from pyespgarage.models.events import DeviceEvent, StreamEvent, StreamEventKind

_logger = logging.getLogger(__name__)
_device_logger = logging.getLogger("pyespgarage.device")

DeviceEventListener = Callable[[DeviceEvent], None]
ConnectionListener = Callable[[ConnectionState], None]


class ConnectionSupervisor:
    """Keeps one event stream connection alive.

    Usage::

        supervisor = ConnectionSupervisor(
            source,
            on_event=engine.on_device_event,
            on_state_change=engine.on_connection_state,
        )
        supervisor.start()
        ...
        await supervisor.stop()

    Every decoded ``state`` event is delivered to event listeners together
    with the connection state transitions, which arrive first; listeners
    decide for themselves whether to trust events outside LIVE.
    """

    def __init__(
        self,
        source: EventStreamSource,
        *,
        liveness_timeout: float = DEFAULT_LIVENESS_TIMEOUT,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        max_retries: int | None = None,
        on_event: DeviceEventListener | None = None,
        on_state_change: ConnectionListener | None = None,
    ) -> None:
        self._source = source
        self._liveness_timeout = liveness_timeout
        self._budget = RetryBudget(max_attempts=max_retries, backoff=retry_backoff)
        self._state = ConnectionState.DISCONNECTED
        self._task: asyncio.Task[None] | None = None
        self._handle: StreamHandle | None = None
        self._channel: asyncio.Queue[StreamEvent] | None = None
        self._liveness = OneShotTimer("liveness", self._on_liveness_timeout)
        self._event_listeners: list[DeviceEventListener] = []
        self._state_listeners: list[ConnectionListener] = []
        if on_event is not None or on_state_change is not None:
            self.add_listener(on_event=on_event, on_state_change=on_state_change)

    @classmethod
    def from_config(cls, config: GarageDoorConfig, source: EventStreamSource) -> ConnectionSupervisor:
        return cls(
            source,
            liveness_timeout=config.liveness_timeout,
            retry_backoff=config.retry_backoff,
            max_retries=config.max_retries,
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state is ConnectionState.LIVE

    @property
    def running(self) -> bool:
        """Whether the supervising task is alive (connected or retrying)."""
        return self._task is not None and not self._task.done()

    @property
    def budget(self) -> RetryBudget:
        return self._budget

    @property
    def url(self) -> str:
        return self._source.url

    def add_listener(
        self,
        *,
        on_event: DeviceEventListener | None = None,
        on_state_change: ConnectionListener | None = None,
    ) -> Callable[[], None]:
        """Register callbacks. Returns a callable that removes them again."""
        if on_event is not None:
            self._event_listeners.append(on_event)
        if on_state_change is not None:
            self._state_listeners.append(on_state_change)

        def _remove() -> None:
            if on_event is not None and on_event in self._event_listeners:
                self._event_listeners.remove(on_event)
            if on_state_change is not None and on_state_change in self._state_listeners:
                self._state_listeners.remove(on_state_change)

        return _remove

    def start(self) -> bool:
        """Start connecting. A no-op while already connecting, connected, or retrying.

        Returns ``True`` if a new supervising task was started.
        """
        if self.running:
            _logger.debug("Supervisor for %s already running (%s); start ignored", self.url, self._state.value)
            return False
        self._budget.reset()
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"pyespgarage-supervisor {self.url}")
        return True

    async def stop(self) -> None:
        """Cancel the supervising task and timers and close the stream."""
        task, self._task = self._task, None
        self._liveness.cancel()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._close_handle()
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Supervising loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            reason = await self._attempt()
            self._set_state(ConnectionState.DISCONNECTED)
            if not self._budget.consume():
                _logger.error(
                    "Giving up on %s after %s reconnect attempts (last error: %s); call start() to try again",
                    self.url,
                    self._budget.max_attempts,
                    reason,
                )
                return
            _logger.warning(
                "Connection to %s failed: %s; reconnecting in %.1fs (%s)",
                self.url,
                reason,
                self._budget.backoff,
                self._budget.describe(),
            )
            await asyncio.sleep(self._budget.backoff)

    async def _attempt(self) -> str:
        """Run one connection from open to close. Returns why it ended."""
        self._set_state(ConnectionState.CONNECTING)
        try:
            handle = await self._source.open()
        except GarageTransportError as exc:
            return str(exc)
        except Exception as exc:
            _logger.error("Unexpected error opening %s", self.url, exc_info=True)
            return repr(exc)

        channel: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._handle = handle
        self._channel = channel
        reader = asyncio.get_running_loop().create_task(self._pump(handle, channel))
        self._set_state(ConnectionState.CONNECTED_UNCONFIRMED)
        self._liveness.start(self._liveness_timeout)
        try:
            while True:
                event = await channel.get()
                if event.is_terminal:
                    return event.error or "stream closed"
                self._dispatch(event)
        finally:
            self._liveness.cancel()
            self._channel = None
            reader.cancel()
            self._close_handle()

    @staticmethod
    async def _pump(handle: StreamHandle, channel: asyncio.Queue[StreamEvent]) -> None:
        try:
            async for event in handle:
                channel.put_nowait(event)
                if event.is_terminal:
                    return
        except Exception as exc:
            channel.put_nowait(StreamEvent.terminal(f"stream reader failed: {exc!r}"))
            return
        channel.put_nowait(StreamEvent.terminal("stream ended"))

    def _on_liveness_timeout(self) -> None:
        channel = self._channel
        if channel is None:
            return
        channel.put_nowait(
            StreamEvent.terminal(f"liveness timeout, no heartbeat within {self._liveness_timeout:.1f}s")
        )

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception:
            _logger.error("Failed to close event stream %s", self.url, exc_info=True)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event: StreamEvent) -> None:
        if event.kind is StreamEventKind.HEARTBEAT:
            self._liveness.start(self._liveness_timeout)
            if self._state is ConnectionState.CONNECTED_UNCONFIRMED:
                self._budget.reset()
                self._set_state(ConnectionState.LIVE)
                _logger.info("Connection to %s is live", self.url)
            return

        if event.kind is StreamEventKind.LOG:
            _device_logger.debug("%s", event.data)
            return

        if event.kind is StreamEventKind.STATE:
            try:
                device_event = DeviceEvent.from_payload(event.data)
            except MalformedEventError as exc:
                _logger.warning("Cannot deserialize state event from %s: %s", self.url, exc)
                return
            for listener in list(self._event_listeners):
                try:
                    listener(device_event)
                except Exception:
                    _logger.warning("Device event listener failed", exc_info=True)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        _logger.debug("Connection %s: %s -> %s", self.url, previous.value, state.value)
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                _logger.warning("Connection state listener failed", exc_info=True)
