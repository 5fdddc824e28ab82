"""Incremental parser for the ``text/event-stream`` wire format.

Only the parts of the format the ESPHome web server uses are relevant,
but the parser follows the standard field rules so unusual framing
(comments, multi-line ``data``, CRLF line endings) does not confuse it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_EVENT_NAME = "message"


@dataclass(frozen=True)
class ServerSentEvent:
    """One dispatched server-sent event."""

    event: str = DEFAULT_EVENT_NAME
    data: str = ""
    id: str | None = None
    retry: int | None = None


@dataclass
class SseParser:
    """Line-oriented SSE parser.

    Feed it decoded lines (with or without their line terminator); it
    returns an event each time a blank line completes one.
    """

    _event: str = field(default="", init=False)
    _data: list[str] = field(default_factory=list, init=False)
    _id: str | None = field(default=None, init=False)
    _retry: int | None = field(default=None, init=False)
    last_event_id: str | None = field(default=None, init=False)

    def feed_line(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self._id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        event_name = self._event or DEFAULT_EVENT_NAME
        data = "\n".join(self._data)
        has_data = bool(self._data)
        event_id = self._id
        retry = self._retry

        self._event = ""
        self._data = []
        self._retry = None
        if event_id is not None:
            self.last_event_id = event_id

        # Events with no data field are not dispatched, except named ones:
        # ESPHome pings may arrive as a bare "event: ping" block.
        if not has_data and not self._event_named(event_name):
            return None
        return ServerSentEvent(event=event_name, data=data, id=event_id, retry=retry)

    @staticmethod
    def _event_named(event_name: str) -> bool:
        return event_name != DEFAULT_EVENT_NAME
