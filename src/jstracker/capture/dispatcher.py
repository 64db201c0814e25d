from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback once after a delay (in seconds)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """
    Schedule timers on an asyncio event loop.

    With no explicit loop, the running loop is looked up at scheduling time,
    so the scheduler can be built before the loop starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        return loop.call_later(delay, callback)


@dataclass(order=True)
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual-clock scheduler; timers fire only when the clock is advanced.

    Usage example
    -------------
        sched = ManualScheduler()
        sched.call_later(2.0, flush)
        sched.advance(1.0)   # nothing yet
        sched.advance(1.0)   # flush() runs, with sched.now == 2.0
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self._timers: List[_ManualTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(due=self.now + max(delay, 0.0), seq=next(self._seq), callback=callback)
        heapq.heappush(self._timers, timer)
        return timer

    def pending(self) -> int:
        """Number of timers scheduled and not cancelled."""
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        """
        Move the clock forward, firing due timers in order.

        Exceptions raised by a timer callback propagate to the caller; the
        clock then stays at that timer's due time.
        """
        if seconds < 0:
            raise ValueError(f"Cannot move the clock backwards ({seconds})")
        target = self.now + seconds
        while self._timers and self._timers[0].due <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self.now = timer.due
            timer.callback()
        self.now = target


class DebouncedDispatcher:
    """
    Coalesce bursts of triggers into one callback after a quiet period.

    Each ``trigger()`` cancels the pending timer (if any) and schedules a new
    one ``delay_s`` ahead, so only the last trigger of a burst fires.

    Usage example
    -------------
        dispatcher = DebouncedDispatcher(delay_s=2.0, scheduler=AsyncioScheduler(), on_fire=flush)
        dispatcher.trigger()
    """

    def __init__(self, *, delay_s: float, scheduler: Scheduler, on_fire: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self._scheduler = scheduler
        self._on_fire = on_fire
        self._pending: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self) -> None:
        """Cancel any pending timer and schedule a fresh one."""
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._scheduler.call_later(self.delay_s, self._fire)

    def cancel(self) -> bool:
        """Cancel the pending timer. Return True if one was pending."""
        if self._pending is None:
            return False
        self._pending.cancel()
        self._pending = None
        return True

    def _fire(self) -> None:
        self._pending = None
        logger.debug("Debounce window elapsed (delay_s=%.3f)", self.delay_s)
        self._on_fire()
