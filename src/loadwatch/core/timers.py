"""Cancellable one-shot timers for deferred work.

A timer factory has the shape `(delay_s, callback) -> handle`, where the handle
has a `cancel()` method. NiceGUI's `ui.timer(delay, cb, once=True)` has that
shape, so a store inside a NiceGUI app can be given

    timer_factory=lambda delay, cb: ui.timer(delay, cb, once=True)

Callbacks always run on the host's own context (event loop or frame loop),
never on a helper thread.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol

from loadwatch.core.utils.logging import get_logger

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def asyncio_timer_factory(delay_s: float, callback: Callable[[], None]) -> TimerHandle:
    """Schedule `callback` on the running asyncio loop after `delay_s` seconds.

    Raises:
        RuntimeError: If there is no running event loop in this thread.
    """
    loop = asyncio.get_running_loop()
    return loop.call_later(delay_s, callback)


class _ManualTimer:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Virtual clock pumped by the host.

    Suited to frame loops (call `advance(dt)` once per frame) and to tests.
    Use the instance itself as the timer factory.

    Example:
        timers = ManualTimers()
        store = LoadingStore(timer_factory=timers)
        ...
        timers.advance(5.0)
    """

    def __init__(self) -> None:
        self._now: float = 0.0
        self._seq = itertools.count()
        self._heap: list[tuple[float, int, _ManualTimer]] = []

    @property
    def now(self) -> float:
        return self._now

    def __call__(self, delay_s: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, float(delay_s)), callback)
        heapq.heappush(self._heap, (timer.due, next(self._seq), timer))
        return timer

    def pending(self) -> int:
        """Number of scheduled timers that have not fired or been cancelled."""
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def advance(self, dt: float) -> int:
        """Move the clock forward by `dt` and fire due timers in due order.

        Timers scheduled by a callback fire in the same call if they fall due
        before the new time.

        Returns:
            Number of callbacks fired.
        """
        if dt < 0:
            raise ValueError(f"dt must be >= 0, got {dt}")
        target = self._now + dt
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            due, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            timer.cancelled = True
            try:
                timer.callback()
            except Exception:
                logger.exception("Exception in timer callback")
            fired += 1
        self._now = target
        return fired
