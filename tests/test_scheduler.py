"""Tests for the debounce scheduler."""

import threading
import time

import pytest

from hotview.scheduler import DebounceScheduler


def _wait_for(condition, timeout=2.0, interval=0.01):
    """Poll until condition() is truthy or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


@pytest.fixture
def scheduler():
    s = DebounceScheduler()
    yield s
    s.shutdown(wait=True)


def test_runs_after_delay(scheduler):
    ran = threading.Event()
    start = time.monotonic()
    task = scheduler.schedule(0.05, ran.set)
    assert ran.wait(2.0)
    assert time.monotonic() - start >= 0.05
    assert task.wait(1.0)
    assert task.done() and not task.cancelled


def test_runs_in_deadline_order(scheduler):
    order = []
    scheduler.schedule(0.10, lambda: order.append("late"))
    scheduler.schedule(0.02, lambda: order.append("early"))
    assert _wait_for(lambda: len(order) == 2)
    assert order == ["early", "late"]


def test_cancel_prevents_run(scheduler):
    ran = []
    task = scheduler.schedule(0.05, lambda: ran.append(1))
    assert task.cancel()
    time.sleep(0.15)
    assert ran == []
    assert task.cancelled and task.done()


def test_cancel_after_start_returns_false(scheduler):
    started = threading.Event()
    release = threading.Event()

    def slow():
        started.set()
        release.wait(2.0)

    task = scheduler.schedule(0, slow)
    assert started.wait(2.0)
    assert task.cancel() is False
    release.set()
    assert task.wait(2.0)


def test_failing_task_does_not_stop_scheduler(scheduler, caplog):
    def boom():
        raise RuntimeError("boom")

    scheduler.schedule(0, boom)
    ran = threading.Event()
    scheduler.schedule(0.01, ran.set)
    assert ran.wait(2.0)
    assert "scheduled task failed" in caplog.text


def test_tasks_run_on_scheduler_thread(scheduler):
    names = []
    scheduler.schedule(0, lambda: names.append(threading.current_thread().name))
    assert _wait_for(lambda: names)
    assert names == ["hotview-debounce"]


def test_shutdown_cancels_pending():
    s = DebounceScheduler()
    ran = []
    task = s.schedule(0.2, lambda: ran.append(1))
    assert s.pending_count() == 1
    s.shutdown(wait=True)
    time.sleep(0.3)
    assert ran == []
    assert task.cancelled
    assert s.is_shutdown


def test_schedule_after_shutdown_is_cancelled():
    s = DebounceScheduler()
    s.shutdown()
    task = s.schedule(0, lambda: None)
    assert task.cancelled and task.done()
