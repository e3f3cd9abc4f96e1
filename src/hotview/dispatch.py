"""UI execution contexts.

A UI context is any callable ``post(fn)`` that arranges for ``fn`` to run on
the UI thread and returns without waiting for it. Reload callbacks are only
ever invoked through one.

The Textual context lives in hotview.tui.dispatch so this module stays free
of the Textual import.
"""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable

logger = logging.getLogger(__name__)

UiContext = Callable[[Callable[[], None]], None]


def call_inline(fn: Callable[[], None]) -> None:
    """Run on the calling thread. For headless use and tests."""
    fn()


class QueueDispatch:
    """Thread-safe queue that the owner's main loop pumps with drain()."""

    def __init__(self) -> None:
        self.queue: queue.Queue[Callable[[], None]] = queue.Queue()

    def __call__(self, fn: Callable[[], None]) -> None:
        self.queue.put(fn)

    def drain(self, timeout: float | None = None) -> int:
        """Run everything queued; returns how many callables ran.

        Blocks up to ``timeout`` seconds for the first item (None: don't block).
        """
        ran = 0
        try:
            fn = self.queue.get(timeout=timeout) if timeout else self.queue.get_nowait()
        except queue.Empty:
            return 0
        while True:
            try:
                fn()
            except Exception:
                logger.exception("queued UI callable failed")
            ran += 1
            try:
                fn = self.queue.get_nowait()
            except queue.Empty:
                return ran

    def pending(self) -> int:
        return self.queue.qsize()
