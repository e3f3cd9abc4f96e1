"""Per-file change monitor with built-in debouncing.

Only the parent directories of watched files are registered with the OS,
non-recursively, through ``watchfiles``. One background thread consumes the
``watchfiles.watch`` iterator; when the directory set changes the iterator is
stopped and restarted with the new set. Events that land during that restart
(e.g. right after a newly discovered include adds a directory) are lost like
any other missed OS event; the next save is picked up.

Raw events are debounced per file on a DebounceScheduler: every event cancels
the pending task for that file and schedules a new one, so a burst of saves
produces one callback invocation. Callbacks run on the scheduler thread.

// [LAW:single-enforcer] The watch loop thread is the only code that blocks on OS events.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

import watchfiles
from watchfiles import Change

from hotview.scheduler import DebounceScheduler, ScheduledTask

logger = logging.getLogger(__name__)

Callback = Callable[[Path], None]

DEFAULT_DEBOUNCE_S = 0.2

# watchfiles' own batching window; our debounce sits on top of it.
_BATCH_MS = 30
_STEP_MS = 10
_RESTART_BACKOFF_S = 0.5


def normalize_file(path: str | Path) -> Path:
    """Absolute, normalized form used as the key for a watched file."""
    return Path(os.path.abspath(os.fspath(path)))


class _EitherEvent:
    """Stop signal for one watchfiles iterator: shutdown or directory-set change."""

    def __init__(self, *events: threading.Event) -> None:
        self._events = events

    def is_set(self) -> bool:
        return any(event.is_set() for event in self._events)


class FileWatcher:
    def __init__(
        self,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        *,
        force_polling: bool | None = None,
        poll_delay_ms: int = 300,
    ) -> None:
        self.debounce_s = debounce_s
        self._force_polling = force_polling
        self._poll_delay_ms = poll_delay_ms

        self._lock = threading.RLock()
        self._callbacks: dict[Path, list[Callback]] = {}
        # realpath -> key, for backends that report resolved paths
        self._aliases: dict[str, Path] = {}
        self._pending: dict[Path, ScheduledTask] = {}
        self._directories: set[Path] = set()
        self._queued_directories: set[Path] = set()

        self._scheduler: DebounceScheduler | None = None
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._rewatch_event: threading.Event | None = None
        self._running = False

    # ─── Registration ─────────────────────────────────────────────────────────

    def watch(self, path: str | Path, callback: Callback) -> None:
        """Invoke ``callback(path)`` after changes to ``path`` settle.

        Idempotent per (path, callback). May be called before start(); the
        parent directory is then queued and registered on start.
        """
        file = normalize_file(path)
        with self._lock:
            callbacks = self._callbacks.setdefault(file, [])
            if callback in callbacks:
                return
            callbacks.append(callback)
            self._aliases[os.path.realpath(file)] = file
            if self._running:
                self._register_directory(file.parent)
            else:
                self._queued_directories.add(file.parent)
        logger.debug("watching %s", file)

    def unwatch(self, path: str | Path, callback: Callback | None = None) -> None:
        """Drop one callback, or all callbacks when ``callback`` is None.

        The parent directory stays registered; events for unwatched files are
        ignored.
        """
        file = normalize_file(path)
        with self._lock:
            callbacks = self._callbacks.get(file)
            if callbacks is None:
                return
            if callback is not None and callback in callbacks:
                callbacks.remove(callback)
            if callback is None or not callbacks:
                del self._callbacks[file]
                self._aliases.pop(os.path.realpath(file), None)
                task = self._pending.pop(file, None)
                if task is not None:
                    task.cancel()

    def watched_files(self) -> list[Path]:
        with self._lock:
            return sorted(self._callbacks)

    def watched_directories(self) -> list[Path]:
        with self._lock:
            return sorted(self._directories | self._queued_directories)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> DebounceScheduler | None:
        return self._scheduler

    def schedule(self, delay: float, fn: Callable[[], None]) -> ScheduledTask | None:
        """Run ``fn`` on the debounce thread; None when the watcher is stopped."""
        with self._lock:
            if self._scheduler is None:
                return None
            return self._scheduler.schedule(delay, fn)

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._scheduler = DebounceScheduler()
            self._stop_event = threading.Event()
            self._rewatch_event = threading.Event()
            self._running = True
            for directory in sorted(self._queued_directories):
                self._register_directory(directory)
            self._queued_directories.clear()
            self._thread = threading.Thread(
                target=self._watch_loop,
                args=(self._stop_event, self._rewatch_event),
                name="hotview-file-watcher",
                daemon=True,
            )
            self._thread.start()
        logger.info("file watcher started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the watch loop and the debounce thread and clear all state."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            # the watch loop polls this every step, which interrupts the OS wait
            self._stop_event.set()
            self._rewatch_event.set()
            self._scheduler.shutdown()
            thread = self._thread
            self._thread = None
            self._scheduler = None
            self._callbacks.clear()
            self._aliases.clear()
            self._pending.clear()
            self._directories.clear()
            self._queued_directories.clear()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("file watcher thread did not exit within %.1fs", timeout)
        logger.info("file watcher stopped")

    # ─── Event handling ───────────────────────────────────────────────────────

    def notify_changed(self, path: str | Path) -> None:
        """Feed one raw change event for ``path`` into the debouncer.

        The watch loop calls this for every OS event; it is public so other
        event sources can share the same debounce.
        """
        file = self._lookup(path)
        with self._lock:
            if file is None or self._scheduler is None or not self._callbacks.get(file):
                return
            previous = self._pending.pop(file, None)
            if previous is not None:
                previous.cancel()
            holder: list[ScheduledTask] = []
            task = self._scheduler.schedule(self.debounce_s, lambda: self._fire(file, holder))
            # _fire reads holder under the lock, after it is filled here
            holder.append(task)
            self._pending[file] = task

    def _lookup(self, path: str | Path) -> Path | None:
        file = normalize_file(path)
        with self._lock:
            if file in self._callbacks:
                return file
            return self._aliases.get(os.path.realpath(file))

    def _fire(self, file: Path, holder: list[ScheduledTask]) -> None:
        with self._lock:
            if self._pending.get(file) is holder[0]:
                del self._pending[file]
            callbacks = list(self._callbacks.get(file, ()))
        logger.debug("change settled: %s (%d callback(s))", file, len(callbacks))
        for callback in callbacks:
            try:
                callback(file)
            except Exception:
                logger.exception("watch callback %r failed for %s", callback, file)

    def _handle_changes(self, changes: Iterable[tuple[Change, str]]) -> None:
        for change, raw_path in changes:
            path = Path(raw_path)
            if change == Change.deleted:
                continue
            if change == Change.added and path.is_dir():
                with self._lock:
                    if self._running:
                        self._register_directory(normalize_file(path))
                continue
            self.notify_changed(path)

    # ─── Watch loop ───────────────────────────────────────────────────────────

    def _register_directory(self, directory: Path) -> None:
        # caller holds self._lock
        if directory in self._directories:
            return
        if not directory.is_dir():
            logger.warning("cannot watch %s: not a directory; changes below it are not monitored", directory)
            return
        if not os.access(directory, os.R_OK | os.X_OK):
            logger.warning("cannot watch %s: permission denied; changes below it are not monitored", directory)
            return
        self._directories.add(directory)
        logger.debug("registered directory %s", directory)
        if self._rewatch_event is not None:
            self._rewatch_event.set()

    def _live_directories(self) -> list[Path]:
        with self._lock:
            gone = [d for d in self._directories if not d.is_dir()]
            for directory in gone:
                logger.warning("watched directory disappeared: %s", directory)
                self._directories.discard(directory)
            return sorted(self._directories)

    def _watch_loop(self, stop_event: threading.Event, rewatch_event: threading.Event) -> None:
        while not stop_event.is_set():
            rewatch_event.clear()
            directories = self._live_directories()
            if not directories:
                rewatch_event.wait()
                continue
            logger.debug("watching %d director(ies)", len(directories))
            try:
                for changes in watchfiles.watch(
                    *directories,
                    debounce=_BATCH_MS,
                    step=_STEP_MS,
                    stop_event=_EitherEvent(stop_event, rewatch_event),
                    recursive=False,
                    raise_interrupt=False,
                    force_polling=self._force_polling,
                    poll_delay_ms=self._poll_delay_ms,
                    ignore_permission_denied=True,
                ):
                    self._handle_changes(changes)
            except Exception:
                if stop_event.is_set():
                    break
                logger.warning("watch loop failed; restarting", exc_info=True)
                stop_event.wait(_RESTART_BACKOFF_S)
