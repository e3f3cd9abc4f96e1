"""Single-threaded scheduled-task executor used for debounce timers.

One daemon thread sleeps on a condition until the earliest deadline, then
runs that task. Tasks run one at a time, in deadline order.

Cancellation is best effort: cancelling a task that already started has no
effect, it runs to completion once.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle returned by DebounceScheduler.schedule()."""

    __slots__ = ("deadline", "fn", "_lock", "_cancelled", "_started", "_done")

    def __init__(self, deadline: float, fn: Callable[[], None], lock: threading.Condition) -> None:
        self.deadline = deadline
        self.fn = fn
        self._lock = lock
        self._cancelled = False
        self._started = False
        self._done = threading.Event()

    def cancel(self) -> bool:
        """Prevent the task from running. False if it already started."""
        with self._lock:
            if self._started:
                return False
            self._cancelled = True
        self._done.set()
        return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "done" if self.done() else "pending"
        return f"<ScheduledTask {state} deadline={self.deadline:.3f}>"


class DebounceScheduler:
    def __init__(self, name: str = "hotview-debounce") -> None:
        self._name = name
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()
        self._thread: threading.Thread | None = None
        self._shutdown = False

    def schedule(self, delay: float, fn: Callable[[], None]) -> ScheduledTask:
        """Run ``fn`` on the scheduler thread after ``delay`` seconds."""
        task = ScheduledTask(time.monotonic() + max(0.0, delay), fn, self._cond)
        with self._cond:
            if self._shutdown:
                task._cancelled = True
                task._done.set()
                return task
            heapq.heappush(self._heap, (task.deadline, next(self._seq), task))
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
            self._cond.notify()
        return task

    def shutdown(self, wait: bool = False) -> None:
        """Cancel everything pending and stop the thread."""
        with self._cond:
            self._shutdown = True
            for _deadline, _seq, task in self._heap:
                task._cancelled = True
                task._done.set()
            self._heap.clear()
            self._cond.notify_all()
            thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def pending_count(self) -> int:
        with self._cond:
            return sum(1 for _d, _s, task in self._heap if not task.cancelled)

    def _next_task(self) -> ScheduledTask | None:
        with self._cond:
            while not self._shutdown:
                while self._heap and self._heap[0][2].cancelled:
                    heapq.heappop(self._heap)
                if not self._heap:
                    self._cond.wait()
                    continue
                remaining = self._heap[0][0] - time.monotonic()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                _deadline, _seq, task = heapq.heappop(self._heap)
                task._started = True
                return task
            return None

    def _run(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            try:
                task.fn()
            except Exception:
                logger.exception("scheduled task failed")
            finally:
                task._done.set()
