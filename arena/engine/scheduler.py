"""
Delayed task execution for battle ticks and expiry.

Two implementations share one small interface (``call_later`` returning a
handle with ``cancel()``, plus ``cancel_all()`` and ``pending_count()``):

- ``ThreadScheduler`` keeps every queued task in one heap. A single timing
  thread sleeps on a condition until the earliest task is due, then hands it
  to a small worker pool, so a slow tick on one battle never holds up
  another battle's timer. Idle queued tasks cost no threads.
- ``ManualScheduler`` keeps a virtual clock; tests call ``advance()`` or
  ``run_until_idle()`` to fire tasks deterministically on the calling thread.

Cancelling a task removes it from the queue. A task that raises is logged
and dropped. The scheduler keeps running.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


def _run_guarded(fn: Callable, args: tuple, label: str) -> None:
    try:
        fn(*args)
    except Exception:
        logger.exception("Scheduled task %s failed", label)


class TaskHandle:
    def __init__(self, label: str = "", on_cancel: Optional[Callable[["TaskHandle"], None]] = None):
        self.label = label
        self.cancelled = False
        self.done = False
        self._lock = threading.Lock()
        self._on_cancel = on_cancel

    def cancel(self) -> bool:
        """Returns False if the task already started or was already cancelled."""
        with self._lock:
            if self.done or self.cancelled:
                return False
            self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel(self)
        return True

    def claim(self) -> bool:
        """Marks the task as started. False means a cancel got there first."""
        with self._lock:
            if self.done or self.cancelled:
                return False
            self.done = True
            return True

    @property
    def pending(self):
        return not (self.done or self.cancelled)


_Row = Tuple[float, int, TaskHandle, Callable, tuple]


def _without(queue: List[_Row], handle: TaskHandle) -> List[_Row]:
    rows = [row for row in queue if row[2] is not handle]
    heapq.heapify(rows)
    return rows


class ThreadScheduler:
    def __init__(self, max_workers: int = DEFAULT_WORKERS, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._queue: List[_Row] = []
        self._cond = threading.Condition()
        self._ids = itertools.count()
        self._timer_thread: Optional[threading.Thread] = None
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="arena-task")

    def call_later(self, delay: float, fn: Callable, *args: Any, label: str = "") -> TaskHandle:
        handle = TaskHandle(label, on_cancel=self._forget)
        with self._cond:
            heapq.heappush(self._queue, (self._clock() + max(0.0, delay), next(self._ids), handle, fn, args))
            if self._timer_thread is None:
                self._timer_thread = threading.Thread(
                    target=self._dispatch, name="arena-scheduler", daemon=True
                )
                self._timer_thread.start()
            self._cond.notify()
        return handle

    def _forget(self, handle: TaskHandle) -> None:
        with self._cond:
            self._queue = _without(self._queue, handle)
            self._cond.notify()

    def _dispatch(self) -> None:
        while True:
            with self._cond:
                while True:
                    if not self._queue:
                        # restarted by the next call_later
                        self._timer_thread = None
                        return
                    wait = self._queue[0][0] - self._clock()
                    if wait <= 0:
                        _, _, handle, fn, args = heapq.heappop(self._queue)
                        break
                    self._cond.wait(wait)
            self._pool.submit(self._fire, handle, fn, args)

    @staticmethod
    def _fire(handle: TaskHandle, fn: Callable, args: tuple) -> None:
        if handle.claim():
            _run_guarded(fn, args, handle.label)

    def cancel_all(self) -> int:
        with self._cond:
            queued, self._queue = self._queue, []
            self._cond.notify()
        return sum(1 for row in queued if row[2].cancel())

    def pending_count(self) -> int:
        with self._cond:
            return sum(1 for row in self._queue if row[2].pending)


class ManualScheduler:
    def __init__(self):
        self.now = 0.0
        self._queue: List[_Row] = []
        self._lock = threading.Lock()
        self._ids = itertools.count()

    def call_later(self, delay: float, fn: Callable, *args: Any, label: str = "") -> TaskHandle:
        handle = TaskHandle(label, on_cancel=self._forget)
        with self._lock:
            heapq.heappush(self._queue, (self.now + max(0.0, delay), next(self._ids), handle, fn, args))
        return handle

    def _forget(self, handle: TaskHandle) -> None:
        with self._lock:
            self._queue = _without(self._queue, handle)

    def _pop_due(self, until: float):
        with self._lock:
            if self._queue and self._queue[0][0] <= until:
                when, _, handle, fn, args = heapq.heappop(self._queue)
                return when, handle, fn, args
        return None

    def advance(self, seconds: float) -> int:
        """Moves the clock forward, firing everything that falls due on the way."""
        target = self.now + seconds
        fired = 0
        while True:
            due = self._pop_due(target)
            if due is None:
                break
            when, handle, fn, args = due
            self.now = max(self.now, when)
            if handle.claim():
                _run_guarded(fn, args, handle.label)
                fired += 1
        self.now = target
        return fired

    def run_until_idle(self, max_tasks: int = 10_000) -> int:
        fired = 0
        while fired < max_tasks:
            with self._lock:
                if not self._queue:
                    break
                next_at = self._queue[0][0]
            fired += self.advance(max(0.0, next_at - self.now))
        return fired

    def cancel_all(self) -> int:
        with self._lock:
            queued, self._queue = self._queue, []
        return sum(1 for row in queued if row[2].cancel())

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)
