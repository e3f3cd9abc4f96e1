"""Tests for the debounced per-file watcher."""

import logging
import threading
import time

import pytest

from hotview.watcher import FileWatcher, normalize_file


def _wait_for(condition, timeout=3.0, interval=0.01):
    """Poll until condition() is truthy or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


class Recorder:
    def __init__(self):
        self.calls = []
        self.threads = []
        self.lock = threading.Lock()

    def __call__(self, path):
        with self.lock:
            self.calls.append(path)
            self.threads.append(threading.current_thread().name)


@pytest.fixture
def watcher():
    w = FileWatcher(debounce_s=0.05)
    yield w
    w.stop()


@pytest.fixture
def view_file(tmp_path):
    path = tmp_path / "Main.fxml"
    path.write_text("<VBox/>", encoding="utf-8")
    return path


# ─── Debounce ─────────────────────────────────────────────────────────────────


def test_burst_collapses_to_one_callback(watcher, view_file):
    recorder = Recorder()
    watcher.watch(view_file, recorder)
    watcher.start()

    for _ in range(5):
        watcher.notify_changed(view_file)
        time.sleep(0.01)

    assert _wait_for(lambda: recorder.calls)
    time.sleep(0.15)
    assert recorder.calls == [normalize_file(view_file)]
    assert recorder.threads == ["hotview-debounce"]


def test_separate_bursts_fire_separately(watcher, view_file):
    recorder = Recorder()
    watcher.watch(view_file, recorder)
    watcher.start()

    watcher.notify_changed(view_file)
    assert _wait_for(lambda: len(recorder.calls) == 1)
    watcher.notify_changed(view_file)
    assert _wait_for(lambda: len(recorder.calls) == 2)


def test_files_debounce_independently(watcher, tmp_path):
    a, b = tmp_path / "A.fxml", tmp_path / "B.fxml"
    for path in (a, b):
        path.write_text("<VBox/>", encoding="utf-8")
    recorder = Recorder()
    watcher.watch(a, recorder)
    watcher.watch(b, recorder)
    watcher.start()

    watcher.notify_changed(a)
    watcher.notify_changed(b)

    assert _wait_for(lambda: len(recorder.calls) == 2)
    assert set(recorder.calls) == {normalize_file(a), normalize_file(b)}


def test_events_for_unwatched_files_are_ignored(watcher, view_file, tmp_path):
    recorder = Recorder()
    watcher.watch(view_file, recorder)
    watcher.start()
    watcher.notify_changed(tmp_path / "Other.fxml")
    time.sleep(0.15)
    assert recorder.calls == []


# ─── Registration ─────────────────────────────────────────────────────────────


def test_watch_is_idempotent_per_callback(watcher, view_file):
    recorder = Recorder()
    watcher.watch(view_file, recorder)
    watcher.watch(view_file, recorder)
    watcher.start()
    watcher.notify_changed(view_file)
    assert _wait_for(lambda: recorder.calls)
    time.sleep(0.1)
    assert len(recorder.calls) == 1


def test_multiple_callbacks_per_file(watcher, view_file):
    first, second = Recorder(), Recorder()
    watcher.watch(view_file, first)
    watcher.watch(view_file, second)
    watcher.start()
    watcher.notify_changed(view_file)
    assert _wait_for(lambda: first.calls and second.calls)


def test_failing_callback_does_not_block_others(watcher, view_file, caplog):
    def broken(path):
        raise RuntimeError("boom")

    recorder = Recorder()
    watcher.watch(view_file, broken)
    watcher.watch(view_file, recorder)
    watcher.start()
    watcher.notify_changed(view_file)
    assert _wait_for(lambda: recorder.calls)
    assert "watch callback" in caplog.text


def test_unwatch_stops_callbacks(watcher, view_file):
    recorder = Recorder()
    watcher.watch(view_file, recorder)
    watcher.start()
    watcher.unwatch(view_file, recorder)
    watcher.notify_changed(view_file)
    time.sleep(0.15)
    assert recorder.calls == []
    assert watcher.watched_files() == []


def test_watch_before_start_queues_parent_directory(watcher, view_file):
    watcher.watch(view_file, Recorder())
    assert watcher.watched_directories() == [normalize_file(view_file.parent)]
    assert not watcher.is_running
    watcher.start()
    assert watcher.is_running
    assert watcher.watched_directories() == [normalize_file(view_file.parent)]


def test_missing_directory_is_logged_not_raised(watcher, tmp_path, caplog):
    missing = tmp_path / "nope" / "Main.fxml"
    with caplog.at_level(logging.WARNING, logger="hotview.watcher"):
        watcher.watch(missing, Recorder())
        watcher.start()
    assert "not a directory" in caplog.text
    assert watcher.watched_directories() == []


def test_stop_clears_state_and_is_idempotent(view_file):
    w = FileWatcher(debounce_s=0.05)
    recorder = Recorder()
    w.watch(view_file, recorder)
    w.start()
    w.notify_changed(view_file)
    w.stop()
    w.stop()
    time.sleep(0.15)
    assert recorder.calls == []
    assert not w.is_running
    assert w.watched_files() == []
    assert w.schedule(0, lambda: None) is None


# ─── Real filesystem ──────────────────────────────────────────────────────────


@pytest.mark.fs
def test_rapid_saves_produce_one_callback(tmp_path):
    view_file = tmp_path / "Main.fxml"
    view_file.write_text("<VBox/>", encoding="utf-8")
    w = FileWatcher(debounce_s=0.2)
    recorder = Recorder()
    w.watch(view_file, recorder)
    w.start()
    try:
        time.sleep(0.3)
        for i in range(5):
            view_file.write_text(f"<VBox><!-- {i} --></VBox>", encoding="utf-8")
            time.sleep(0.02)
        assert _wait_for(lambda: recorder.calls, timeout=5.0)
        time.sleep(0.5)
        assert len(recorder.calls) == 1
    finally:
        w.stop()


@pytest.mark.fs
def test_file_in_new_subdirectory_is_seen(tmp_path):
    watched = tmp_path / "Main.fxml"
    watched.write_text("<VBox/>", encoding="utf-8")
    w = FileWatcher(debounce_s=0.05)
    w.watch(watched, Recorder())
    w.start()
    try:
        time.sleep(0.3)
        subdir = tmp_path / "parts"
        subdir.mkdir()
        assert _wait_for(lambda: normalize_file(subdir) in w.watched_directories(), timeout=5.0)

        nested = subdir / "Row.fxml"
        recorder = Recorder()
        w.watch(nested, recorder)
        time.sleep(0.3)
        nested.write_text("<HBox/>", encoding="utf-8")
        assert _wait_for(lambda: recorder.calls, timeout=5.0)
    finally:
        w.stop()
