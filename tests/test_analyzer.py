from fakes import FakeGateway, make_record
from payroll_agent.analyzer import PatternAnalyzer


def test_groups_by_interval_and_recommends_large_groups():
    records = [make_record(i, interval=86400) for i in range(1, 6)]
    records += [make_record(i, interval=3600) for i in range(6, 9)]
    gateway = FakeGateway(records)

    report = PatternAnalyzer(gateway).run_once()

    assert report.groups == {86400: [1, 2, 3, 4, 5], 3600: [6, 7, 8]}
    assert report.recommended_intervals == [86400]
    assert not any(call[0].startswith("submit") for call in gateway.calls)


def test_read_failure_returns_empty_report():
    gateway = FakeGateway([make_record(1)])
    gateway.fail_list = True

    report = PatternAnalyzer(gateway).run_once()

    assert report.groups == {}
    assert report.recommended_intervals == []


def test_group_must_exceed_threshold():
    records = [make_record(i, interval=600) for i in range(1, 4)]

    assert PatternAnalyzer(FakeGateway(records), batch_threshold=3).run_once().recommended_intervals == []
    assert PatternAnalyzer(FakeGateway(records), batch_threshold=2).run_once().recommended_intervals == [600]
