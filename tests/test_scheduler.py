import threading
from datetime import datetime

import pytest

from payroll_agent.scheduler import PeriodicTask, Scheduler, seconds_until_midnight


def test_seconds_until_midnight():
    assert seconds_until_midnight(datetime(2024, 3, 1, 23, 0, 0)) == 3600
    assert seconds_until_midnight(datetime(2024, 3, 1, 0, 0, 0)) == 86400
    assert seconds_until_midnight(datetime(2024, 12, 31, 23, 59, 30)) == 30


def test_run_once_swallows_callback_errors():
    def boom():
        raise RuntimeError("tick failed")

    task = PeriodicTask("boom", 60, boom)
    task.run_once()
    task.run_once()

    assert task.runs == 2


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)


def test_loop_keeps_firing_after_failures_and_stops():
    fired = threading.Event()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) >= 3:
            fired.set()
        raise RuntimeError("still failing")

    scheduler = Scheduler()
    scheduler.every("flaky", 0.01, flaky)
    scheduler.start()

    assert fired.wait(5)
    scheduler.stop(timeout=5)

    assert scheduler.stopped is True
    assert len(calls) >= 3
    assert not scheduler.tasks[0]._thread.is_alive()


def test_initial_delay_is_interrupted_by_stop():
    calls = []
    scheduler = Scheduler()
    scheduler.every("delayed", 60, lambda: calls.append(1), initial_delay=3600)
    scheduler.daily_at_midnight("daily", lambda: calls.append(2))
    scheduler.start()

    scheduler.stop(timeout=5)

    assert calls == []
    assert all(not task._thread.is_alive() for task in scheduler.tasks)
