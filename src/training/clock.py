"""Tick sources for the session execution engine.

The engine never sleeps or reads wall-clock time to drive its timers.
Instead it arms a Ticker, which calls back once per interval on the same
logical thread as every other state transition.  ``start`` on an armed
ticker and ``stop`` on a stopped ticker are no-ops, so pause/resume can
never double-start a timer.

    ManualTicker  — deterministic; ticks only when ``advance()`` is called.
    AsyncioTicker — real ticks scheduled on the running asyncio loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger("trackerpro.training.clock")

TickCallback = Callable[[], None]


class Ticker(ABC):
    """Periodic tick source that can be stopped and re-armed idempotently."""

    def __init__(self, interval: float = 1.0, name: str = "ticker") -> None:
        self.interval = interval
        self.name = name
        self._callback: TickCallback | None = None

    @property
    @abstractmethod
    def running(self) -> bool:
        """True while armed."""

    def start(self, callback: TickCallback) -> bool:
        """Arm the ticker.  Returns False if it was already running."""
        if self.running:
            return False
        self._callback = callback
        self._arm()
        logger.debug("Ticker %s armed (every %.1fs)", self.name, self.interval)
        return True

    def stop(self) -> bool:
        """Disarm the ticker.  Returns False if it was not running."""
        if not self.running:
            return False
        self._disarm()
        logger.debug("Ticker %s stopped", self.name)
        return True

    def _fire(self) -> None:
        if self._callback is not None:
            self._callback()

    @abstractmethod
    def _arm(self) -> None: ...

    @abstractmethod
    def _disarm(self) -> None: ...


class ManualTicker(Ticker):
    """Fake clock for tests: time only moves when ``advance`` is called."""

    def __init__(self, interval: float = 1.0, name: str = "manual") -> None:
        super().__init__(interval, name)
        self._armed = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._armed

    def _arm(self) -> None:
        self._armed = True

    def _disarm(self) -> None:
        self._armed = False

    def advance(self, ticks: int = 1) -> int:
        """Deliver up to ``ticks`` callbacks; stops early if a callback disarms it.

        Returns the number of ticks actually delivered.
        """
        delivered = 0
        for _ in range(ticks):
            if not self._armed:
                break
            self.ticks += 1
            delivered += 1
            self._fire()
        return delivered


class AsyncioTicker(Ticker):
    """Ticks on an asyncio event loop using ``loop.call_later``.

    Must be started from code running on the loop (or with an explicit
    ``loop``).  Callbacks execute on the loop thread.
    """

    def __init__(
        self,
        interval: float = 1.0,
        name: str = "asyncio",
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(interval, name)
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def _arm(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._schedule()

    def _schedule(self) -> None:
        assert self._loop is not None
        self._handle = self._loop.call_later(self.interval, self._on_timer)

    def _on_timer(self) -> None:
        fired = self._handle
        self._fire()
        # A callback that stopped or restarted us owns the schedule now.
        if fired is not None and self._handle is fired:
            self._schedule()

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


TickerFactory = Callable[[str], Ticker]


def manual_ticker_factory(name: str) -> ManualTicker:
    return ManualTicker(name=name)


def asyncio_ticker_factory(interval: float = 1.0) -> TickerFactory:
    def _factory(name: str) -> Ticker:
        return AsyncioTicker(interval=interval, name=name)

    return _factory
