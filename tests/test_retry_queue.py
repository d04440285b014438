import json
import threading
from pathlib import Path

import pytest

from payroll_agent.retry_queue import RetryQueue


def test_failures_are_dropped_when_count_reaches_limit():
    queue = RetryQueue(max_retries=3)

    first = queue.record_failure(7)
    second = queue.record_failure(7)
    assert (first.attempts, first.exhausted) == (1, False)
    assert (second.attempts, second.exhausted) == (2, False)
    assert queue.get(7) == 2

    third = queue.record_failure(7)
    assert third.exhausted is True
    assert third.attempts == 3
    assert 7 not in queue
    assert len(queue) == 0


def test_success_clears_entry_and_later_failure_starts_over():
    queue = RetryQueue(max_retries=3)
    queue.record_failure("4")
    queue.record_failure("4")

    assert queue.remove(4) is True
    assert queue.remove(4) is False
    assert queue.get(4) == 0

    outcome = queue.record_failure(4)
    assert outcome.attempts == 1
    assert queue.snapshot() == {"4": 1}


def test_write_failure_keeps_in_memory_state(tmp_path: Path, monkeypatch):
    def read_only(self, target):
        raise OSError(30, "Read-only file system")

    path = tmp_path / "retry_queue.json"
    queue = RetryQueue(max_retries=3, path=path)
    monkeypatch.setattr(Path, "replace", read_only)

    outcome = queue.record_failure(9)
    assert outcome.attempts == 1
    assert queue.get(9) == 1
    assert queue.remove(9) is True
    assert len(queue) == 0
    assert not path.exists()


def test_remove_many_is_idempotent():
    queue = RetryQueue()
    queue.record_failure(1)
    queue.record_failure(2)

    assert queue.remove_many([1, 2, 3]) == 2
    assert queue.remove_many([1, 2, 3]) == 0
    assert len(queue) == 0


def test_invalid_limit_rejected():
    with pytest.raises(ValueError):
        RetryQueue(max_retries=0)


def test_persistence_survives_reload(tmp_path: Path):
    path = tmp_path / "state" / "retry_queue.json"
    queue = RetryQueue(max_retries=3, path=path)
    queue.record_failure(11)
    queue.record_failure(12)
    queue.record_failure(12)

    assert json.loads(path.read_text()) == {"11": 1, "12": 2}

    reloaded = RetryQueue(max_retries=3, path=path)
    assert reloaded.snapshot() == {"11": 1, "12": 2}


def test_reload_discards_out_of_range_counts(tmp_path: Path):
    path = tmp_path / "retry_queue.json"
    path.write_text(json.dumps({"1": 1, "2": 5, "bad": 1, "3": "x"}))

    queue = RetryQueue(max_retries=3, path=path)
    assert queue.snapshot() == {"1": 1}


def test_corrupt_file_loads_empty(tmp_path: Path):
    path = tmp_path / "retry_queue.json"
    path.write_text("{not json")

    queue = RetryQueue(path=path)
    assert len(queue) == 0


def test_concurrent_failures_do_not_lose_updates():
    queue = RetryQueue(max_retries=1000)
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(50):
            queue.record_failure(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert queue.get(1) == 400
