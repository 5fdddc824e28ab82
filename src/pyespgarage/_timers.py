"""Restartable one-shot timers on top of an asyncio-compatible scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

_logger = logging.getLogger(__name__)


class TimerHandleLike(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The subset of :class:`asyncio.AbstractEventLoop` timers rely on.

    Tests substitute a manual clock implementing the same two methods.
    """

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandleLike: ...

    def time(self) -> float: ...


class OneShotTimer:
    """A named timer with at most one pending callback.

    ``start()`` on an active timer replaces the pending callback, and
    ``cancel()`` guarantees the callback will not run. A callback that was
    superseded can therefore never fire late.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], None],
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.name = name
        self._callback = callback
        self._scheduler = scheduler
        self._handle: TimerHandleLike | None = None
        self._deadline: float | None = None

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Scheduler time the pending callback fires at, if any."""
        return self._deadline

    def now(self) -> float:
        return self.scheduler.time()

    def start(self, delay: float) -> float:
        """(Re)start the timer. Returns the new deadline."""
        self.cancel()
        scheduler = self.scheduler
        self._deadline = scheduler.time() + delay
        self._handle = scheduler.call_later(delay, self._fire)
        return self._deadline

    def cancel(self) -> bool:
        """Cancel the pending callback. Returns ``True`` if one was pending."""
        handle = self._handle
        if handle is None:
            return False
        self._handle = None
        self._deadline = None
        handle.cancel()
        _logger.debug("Timer %s cancelled", self.name)
        return True

    def _fire(self) -> None:
        self._handle = None
        self._deadline = None
        _logger.debug("Timer %s expired", self.name)
        self._callback()
