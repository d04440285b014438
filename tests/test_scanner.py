import threading

from fakes import FakeGateway, RecordingNotifier, make_record
from payroll_agent.dispatcher import DispatchPolicy
from payroll_agent.notifier import EventEmitter
from payroll_agent.retry_queue import RetryQueue
from payroll_agent.scanner import PaymentScanner

NOW = 1_700_000_000


class BlockingGateway(FakeGateway):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def list_active_payment_ids(self):
        ids = super().list_active_payment_ids()
        self.entered.set()
        self.release.wait(5)
        return ids


def build(gateway, clock=lambda: NOW):
    notifier = RecordingNotifier()
    emitter = EventEmitter(notifier)
    queue = RetryQueue()
    dispatcher = DispatchPolicy(gateway, queue, emitter)
    scanner = PaymentScanner(gateway, dispatcher, emitter, clock=clock)
    return scanner, notifier, queue


def test_overlapping_scan_is_skipped_without_gateway_calls():
    gateway = BlockingGateway([make_record(1, last_payment=NOW - 7200)], eligible={1})
    scanner, _, _ = build(gateway)
    results = []

    worker = threading.Thread(target=lambda: results.append(scanner.run_once()))
    worker.start()
    assert gateway.entered.wait(5)
    assert scanner.is_processing is True

    calls_before = list(gateway.calls)
    assert scanner.run_once() is None
    assert gateway.calls == calls_before

    gateway.release.set()
    worker.join(5)
    assert results[0].processable == [1]
    assert scanner.is_processing is False

    # the next tick rescans from scratch
    gateway.release.set()
    second = scanner.run_once()
    assert second is not None
    assert gateway.single_submissions == [1, 1]


def test_partitions_payments():
    records = [
        make_record(1, last_payment=NOW - 3600),
        make_record(2, last_payment=NOW - 100),
        make_record(3, last_payment=NOW - 4000),
        make_record(4, is_active=False),
    ]
    gateway = FakeGateway(records, eligible={1})
    scanner, notifier, _ = build(gateway)

    result = scanner.run_once()

    assert result.processable == [1]
    assert result.not_yet_due == {2: 3500}
    assert result.blocked == [3]
    assert result.inactive == [4]
    assert result.dispatch.succeeded == [1]

    warnings = notifier.of_type("warning")
    assert [event.title for event in warnings] == ["Low Balance Alert"]
    assert warnings[0].payment_id == 3


def test_blocked_warning_repeats_every_tick():
    gateway = FakeGateway([make_record(3, last_payment=NOW - 4000)])
    scanner, notifier, _ = build(gateway)

    scanner.run_once()
    scanner.run_once()

    assert len(notifier.of_type("warning")) == 2


def test_eligibility_error_excludes_only_that_payment():
    records = [make_record(1, last_payment=0), make_record(2, last_payment=0)]
    gateway = FakeGateway(records, eligible={1, 2})
    gateway.fail_eligibility = {1}
    scanner, _, _ = build(gateway)

    result = scanner.run_once()

    assert result.errored == [1]
    assert result.processable == [2]
    assert gateway.single_submissions == [2]


def test_nothing_processable_skips_dispatch():
    gateway = FakeGateway([make_record(2, last_payment=NOW - 10)])
    scanner, _, _ = build(gateway)

    result = scanner.run_once()

    assert result.dispatch is None
    assert not any(call[0].startswith("submit") for call in gateway.calls)


def test_list_failure_ends_tick_and_releases_guard():
    gateway = FakeGateway([make_record(1)], eligible={1})
    gateway.fail_list = True
    scanner, _, _ = build(gateway)

    result = scanner.run_once()

    assert result.processable == []
    assert scanner.is_processing is False

    gateway.fail_list = False
    assert scanner.run_once().processable == [1]


def test_unexpected_error_releases_guard(monkeypatch):
    gateway = FakeGateway([make_record(1)], eligible={1})
    scanner, _, _ = build(gateway)

    def boom(_ids):
        raise RuntimeError("dispatch bug")

    monkeypatch.setattr(scanner.dispatcher, "dispatch", boom)
    result = scanner.run_once()

    assert result.processable == [1]
    assert scanner.is_processing is False


def test_four_due_payments_dispatch_as_batch():
    records = [make_record(i, last_payment=0) for i in (1, 2, 3, 4)]
    gateway = FakeGateway(records, eligible={1, 2, 3, 4})
    scanner, _, _ = build(gateway)

    result = scanner.run_once()

    assert result.dispatch.mode == "batch"
    assert gateway.batch_submissions == [[1, 2, 3, 4]]
