"""Custom exception hierarchy for pyespgarage."""

from __future__ import annotations


class GarageError(Exception):
    """Base exception for all pyespgarage errors."""


class GarageConfigError(GarageError):
    """Invalid or missing configuration."""


class MalformedEventError(GarageError):
    """A ``state`` payload from the event stream could not be decoded.

    Raised at the decoding boundary; the connection supervisor logs it and
    drops the event, so it never terminates a connection.
    """

    def __init__(self, message: str, *, payload: str = "") -> None:
        self.payload = payload
        super().__init__(message)


class GarageTransportError(GarageError):
    """HTTP-level failure on the event stream (network, non-200, broken read)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class CommandFailedError(GarageError):
    """An open/close command was not accepted by the device.

    Covers both network errors and non-2xx responses. The command
    dispatcher converts this into a ``False`` result for callers of
    :meth:`DoorStateEngine.request_transition`.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class DeviceUnknownError(GarageError):
    """A command was requested before any device event revealed the device id."""
