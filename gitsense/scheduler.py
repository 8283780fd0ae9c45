"""Single-consumer callback scheduler.

Worker threads never touch tracking state directly: they post callbacks here,
and every callback runs on whichever thread pumps the scheduler. Timers
(debounce, job timeouts, watch polls) live on the same queue.
"""

from __future__ import annotations

import heapq
import logging
import time
from collections.abc import Callable
from queue import Empty, Queue

logger = logging.getLogger(__name__)

DEFAULT_WAIT_INTERVAL_SECONDS = 0.001


class TimerHandle:
    """Cancelable one-shot timer scheduled with ``Scheduler.call_later``."""

    __slots__ = ("deadline", "callback", "cancelled", "fired")

    def __init__(self, deadline: float, callback: Callable[[], None]) -> None:
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class Scheduler:
    """Callback queue plus timer heap drained by one owner thread.

    ``call_soon_threadsafe`` may be used from any thread. ``call_later`` and
    the pumping methods belong to the owner thread.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._monotonic = monotonic
        self._ready: Queue[Callable[[], None]] = Queue()
        self._timers: list[tuple[float, int, TimerHandle]] = []
        self._timer_seq = 0
        self._stopping = False

    def now(self) -> float:
        return self._monotonic()

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        self._ready.put(callback)

    call_soon = call_soon_threadsafe

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._monotonic() + max(0.0, delay_seconds), callback)
        self._timer_seq += 1
        heapq.heappush(self._timers, (handle.deadline, self._timer_seq, handle))
        return handle

    def pending_timer_count(self) -> int:
        return sum(1 for _deadline, _seq, handle in self._timers if handle.active)

    def _next_deadline(self) -> float | None:
        while self._timers and not self._timers[0][2].active:
            heapq.heappop(self._timers)
        if not self._timers:
            return None
        return self._timers[0][0]

    def _invoke(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("scheduled callback failed")

    def _fire_due_timers(self) -> int:
        fired = 0
        now = self._monotonic()
        while self._timers and self._timers[0][0] <= now:
            _deadline, _seq, handle = heapq.heappop(self._timers)
            if not handle.active:
                continue
            handle.fired = True
            self._invoke(handle.callback)
            fired += 1
        return fired

    def run_once(self, block_seconds: float = 0.0) -> int:
        """Run due timers and queued callbacks; return how many ran.

        With ``block_seconds > 0`` the call waits for a posted callback, but
        never past the next timer deadline.
        """
        ran = self._fire_due_timers()

        wait = 0.0
        if ran == 0 and block_seconds > 0 and self._ready.empty():
            wait = block_seconds
            next_deadline = self._next_deadline()
            if next_deadline is not None:
                wait = min(wait, max(0.0, next_deadline - self._monotonic()))

        try:
            callback = self._ready.get(timeout=wait) if wait > 0 else self._ready.get_nowait()
        except Empty:
            return ran + self._fire_due_timers()

        self._invoke(callback)
        ran += 1
        while True:
            try:
                callback = self._ready.get_nowait()
            except Empty:
                break
            self._invoke(callback)
            ran += 1
        return ran + self._fire_due_timers()

    def wait_until(
        self,
        predicate: Callable[[], bool],
        timeout_seconds: float,
        interval_seconds: float = DEFAULT_WAIT_INTERVAL_SECONDS,
    ) -> bool:
        """Pump the scheduler until ``predicate()`` holds or time runs out.

        Other callbacks keep running while waiting, so a blocking caller never
        stalls unrelated completions.
        """
        deadline = self._monotonic() + max(0.0, timeout_seconds)
        while not predicate():
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                return predicate()
            self.run_once(block_seconds=min(interval_seconds, remaining))
        return True

    def run(self, poll_seconds: float = 0.05) -> None:
        """Pump until ``stop`` is called from a callback or another thread."""
        self._stopping = False
        while not self._stopping:
            self.run_once(block_seconds=poll_seconds)

    def stop(self) -> None:
        self._stopping = True


__all__ = ["Scheduler", "TimerHandle"]
