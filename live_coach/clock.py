"""
Clock and Timer: the only sources of time and deferred work in the pipeline.

Everything runs on one asyncio event loop; callbacks scheduled here run to
completion before the next one starts, so pipeline state needs no locks.
Tests substitute a fake clock with the same three methods.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Clock(Protocol):
    """Time source. now_ms() is wall-clock milliseconds."""

    def now_ms(self) -> float:
        ...

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> TimerHandle:
        ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Future[Any]":
        ...


def _unix_ms() -> float:
    return time.time() * 1000.0


class LoopClock:
    """Clock backed by the running asyncio loop."""

    def now_ms(self) -> float:
        return _unix_ms()

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_ms) / 1000.0, fn)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        task.add_done_callback(_log_task_exception)
        return task


def _log_task_exception(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task failed: %r", exc)


class Timer:
    """
    One-shot cancellable timer with an explicit pending flag.

    schedule() always cancels before rescheduling, so at most one callback is
    outstanding. cancel() after firing is a no-op. A fire that races a cancel
    checks the flag first: a cancelled timer never runs its callback.
    """

    def __init__(self, clock: Clock, name: str = "timer") -> None:
        self._clock = clock
        self._name = name
        self._handle: TimerHandle | None = None
        self._generation = 0
        self.pending = False

    def schedule(self, delay_ms: float, fn: Callable[[], None]) -> None:
        self.cancel()
        self._generation += 1
        generation = self._generation
        self.pending = True
        self._handle = self._clock.call_later(delay_ms, lambda: self._fire(generation, fn))

    def cancel(self) -> bool:
        """Cancel the outstanding callback. Returns True if one was pending."""
        was_pending = self.pending
        self.pending = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        return was_pending

    def _fire(self, generation: int, fn: Callable[[], None]) -> None:
        # Stale handle from an earlier schedule(): ignore.
        if not self.pending or generation != self._generation:
            return
        self.pending = False
        self._handle = None
        try:
            fn()
        except Exception:
            logger.exception("Timer %s callback failed", self._name)
