from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol

# ============================================================================
# Timers for the debounced sync pipeline
#
# Everything runs on one thread: a timer callback is just another event
# that runs to completion before the next one is dispatched.
# ============================================================================


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class _ManualTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """A simulated clock. Timers fire only when ``advance`` moves time past them.

    Used by tests, and by hosts that drive the diagram from their own frame
    tick instead of an asyncio loop.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self.now + delay, callback)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order. Returns how many fired."""
        deadline = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= deadline:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = when
            timer.callback()
            fired += 1
        self.now = deadline
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)


class AsyncioScheduler:
    """Schedules on an asyncio event loop (the running loop by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)
