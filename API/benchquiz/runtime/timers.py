"""
Cancellable scheduled callbacks for the session runtime.

A session owns at most three kinds of timers: the 1s countdown, the periodic
auto-save and the short practice-mode auto-advance. All of them go through a
Scheduler so the state machine never touches the event loop directly.
"""
from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable

from benchquiz.core.logging import DOMAIN_SESSION, get_domain_logger

logger = get_domain_logger(__name__, DOMAIN_SESSION)


class TimerHandle:
    def __init__(self, on_cancel: Callable[[], None] | None = None):
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        # Cancelling twice is a no-op.
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Scheduler(ABC):
    @abstractmethod
    def now_ms(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    @abstractmethod
    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Runs callbacks on an asyncio event loop (the running loop unless one is given)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._get_loop()
        timer = loop.call_later(delay_seconds, self._guarded, callback)
        return TimerHandle(timer.cancel)

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._get_loop()
        state: dict[str, asyncio.TimerHandle | None] = {"timer": None}
        handle = TimerHandle(lambda: state["timer"].cancel() if state["timer"] else None)

        def _fire() -> None:
            if handle.cancelled:
                return
            state["timer"] = loop.call_later(interval_seconds, _fire)
            self._guarded(callback)

        state["timer"] = loop.call_later(interval_seconds, _fire)
        return handle

    @staticmethod
    def _guarded(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled callback failed")
