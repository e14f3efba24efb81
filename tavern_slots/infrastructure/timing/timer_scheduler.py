# tavern_slots/infrastructure/timing/timer_scheduler.py
import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol, Tuple


class TimerHandle:
    """
    A scheduled callback that can be cancelled until it fires.
    """
    def __init__(self, timer_id: int, name: str, due_ms: float, callback: Callable[[], None]):
        self.id = timer_id
        self.name = name
        self.due_ms = due_ms
        self._callback = callback
        self._lock = threading.Lock()
        self._cancelled = False
        self._fired = False
        self._on_cancel: Optional[Callable[[], None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> bool:
        """
        Cancel the timer.

        Returns:
            True if the timer was still pending, False if it already fired or was cancelled
        """
        with self._lock:
            if not self.active:
                return False
            self._cancelled = True
        if self._on_cancel:
            self._on_cancel()
        return True

    def fire(self) -> bool:
        with self._lock:
            if not self.active:
                return False
            self._fired = True
        self._callback()
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else ("fired" if self._fired else "pending")
        return f"TimerHandle(id={self.id}, name={self.name!r}, due_ms={self.due_ms}, {state})"


class TimerScheduler(Protocol):
    """Source of cancellable one-shot timers."""

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> TimerHandle:
        ...

    def now_ms(self) -> float:
        ...

    def shutdown(self) -> None:
        ...


class ManualTimerScheduler:
    """
    Virtual-clock scheduler. Time only moves when `advance` or
    `run_until_idle` is called, which makes timed transitions deterministic
    in tests and lets simulations run faster than real time.
    """
    def __init__(self, start_ms: float = 0.0):
        self.logger = logging.getLogger("infrastructure.timing.manual")
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._ids = itertools.count(1)

    def now_ms(self) -> float:
        return self._now

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> TimerHandle:
        timer_id = next(self._ids)
        handle = TimerHandle(timer_id, name, self._now + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._queue, (handle.due_ms, timer_id, handle))
        self.logger.debug(f"Scheduled {name or 'timer'} #{timer_id} at t={handle.due_ms:.0f}ms")
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._queue if handle.active)

    def next_due_ms(self) -> Optional[float]:
        self._drop_inactive()
        return self._queue[0][0] if self._queue else None

    def advance(self, delta_ms: float) -> int:
        """
        Move the clock forward, firing every timer that becomes due in order.
        Timers scheduled by callbacks are fired too if they fall inside the window.

        Args:
            delta_ms: Milliseconds to advance

        Returns:
            Number of timers fired
        """
        target = self._now + max(0.0, float(delta_ms))
        fired = 0

        while True:
            due = self.next_due_ms()
            if due is None or due > target:
                break
            _, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, handle.due_ms)
            if handle.fire():
                fired += 1

        self._now = target
        return fired

    def run_until_idle(self, max_timers: int = 100000) -> int:
        """
        Keep jumping to the next due timer until none are pending.

        Args:
            max_timers: Safety limit for self-rescheduling callbacks

        Returns:
            Number of timers fired
        """
        fired = 0
        while fired < max_timers:
            due = self.next_due_ms()
            if due is None:
                break
            fired += self.advance(due - self._now)
        else:
            self.logger.warning(f"run_until_idle stopped after {max_timers} timers")
        return fired

    def shutdown(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()

    def _drop_inactive(self):
        while self._queue and not self._queue[0][2].active:
            heapq.heappop(self._queue)


class ThreadingTimerScheduler:
    """
    Real-time scheduler backed by `threading.Timer`. Callbacks run on the
    timer threads, so whatever they call must be thread-safe.
    """
    def __init__(self):
        self.logger = logging.getLogger("infrastructure.timing.threading")
        self._ids = itertools.count(1)
        self._timers: Dict[int, threading.Timer] = {}
        self._lock = threading.Lock()
        self._start = time.monotonic()

    def now_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000.0

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> TimerHandle:
        timer_id = next(self._ids)
        delay_ms = max(0.0, float(delay_ms))
        handle = TimerHandle(timer_id, name, self.now_ms() + delay_ms, callback)

        def run():
            with self._lock:
                self._timers.pop(timer_id, None)
            try:
                handle.fire()
            except Exception:
                self.logger.exception(f"Timer {name or timer_id} callback failed")

        timer = threading.Timer(delay_ms / 1000.0, run)
        timer.daemon = True
        handle._on_cancel = lambda: self._cancel_thread(timer_id)

        with self._lock:
            self._timers[timer_id] = timer
        timer.start()
        return handle

    def _cancel_thread(self, timer_id: int):
        with self._lock:
            timer = self._timers.pop(timer_id, None)
        if timer:
            timer.cancel()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


def create_scheduler(realtime: bool = False) -> TimerScheduler:
    """Build the real-time scheduler or a fresh virtual clock."""
    return ThreadingTimerScheduler() if realtime else ManualTimerScheduler()
