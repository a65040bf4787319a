"""Tests for ca_janitor.outcome — results, reports and exit codes."""
from __future__ import annotations

from ca_janitor.outcome import OperationResult, RunOutcome, RunReport, SoftError


class TestRunOutcome:
    def test_exit_codes(self) -> None:
        assert RunOutcome.SUCCESS.exit_code == 0
        assert RunOutcome.PARTIAL.exit_code == 24
        assert RunOutcome.FATAL.exit_code == 1


class TestOperationResult:
    def test_defaults(self) -> None:
        result = OperationResult()
        assert result.count == 0
        assert not result.errored

    def test_add_error(self) -> None:
        result = OperationResult()
        result.add_error("Could not find certificate file at x.pem", "x")
        assert result.errors == [SoftError("Could not find certificate file at x.pem", "x")]

    def test_merge_returns_self(self) -> None:
        first = OperationResult(count=1)
        second = OperationResult(count=2, errors=[SoftError("e")])
        assert first.merge(second) is first
        assert first.count == 3
        assert first.errored


class TestRunReport:
    def test_empty_report_is_success(self) -> None:
        assert RunReport().outcome is RunOutcome.SUCCESS

    def test_record_accumulates(self) -> None:
        report = RunReport()
        returned = report.record(OperationResult(count=2))
        report.record(OperationResult(count=3))
        assert isinstance(returned, OperationResult)
        assert report.count == 5
        assert report.exit_code == 0

    def test_soft_error_is_partial_even_without_work(self) -> None:
        report = RunReport()
        report.record(OperationResult(errors=[SoftError("missing")]))
        assert report.count == 0
        assert report.outcome is RunOutcome.PARTIAL
        assert report.exit_code == 24

    def test_fatal_wins(self) -> None:
        report = RunReport()
        report.record(OperationResult(count=1, errors=[SoftError("missing")]))
        report.fail("CA service running")
        assert report.outcome is RunOutcome.FATAL
        assert report.exit_code == 1
