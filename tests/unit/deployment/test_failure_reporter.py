"""
Tests unitaires pour FailureReporter et DiagnosticsCollector
"""

import json
from datetime import datetime, timedelta
from typing import List

import pytest

from conftest import FakeRuntime
from src.deployment.failure_reporter import DiagnosticsCollector, FailureReporter
from src.deployment.interfaces import (
    Criticality,
    DiagnosticSnapshot,
    ExitCode,
    ExitStatus,
    RolloutResult,
    ServiceOutcome,
    ServiceState,
)
from src.logging.interfaces import LogLevel


def outcome(name: str, tier: int, state: ServiceState, blocking: bool = True, **kwargs) -> ServiceOutcome:
    return ServiceOutcome(
        name=name,
        tier=tier,
        criticality=Criticality.BLOCKING if blocking else Criticality.BEST_EFFORT,
        state=state,
        **kwargs,
    )


def fatal_result() -> RolloutResult:
    started = datetime(2026, 3, 1, 12, 0, 0)
    result = RolloutResult(
        status=ExitStatus.FATAL,
        halted_tier=1,
        tiers_attempted=[0, 1],
        started_at=started,
        finished_at=started + timedelta(seconds=42),
    )
    outcomes: List[ServiceOutcome] = [
        outcome("postgres", 0, ServiceState.HEALTHY, attempts=2),
        outcome("metrics", 0, ServiceState.UNHEALTHY, blocking=False, attempts=3, error="probe failed"),
        outcome(
            "api", 1, ServiceState.UNHEALTHY, attempts=10, error="connection refused",
            diagnostics=DiagnosticSnapshot(service="api", status="exited", log_tail=["boom"]),
        ),
        outcome("proxy", 2, ServiceState.NOT_ATTEMPTED),
    ]
    result.outcomes = {o.name: o for o in outcomes}
    return result


class TestSummary:
    """Synthèse déterministe."""

    def test_fatal_summary(self, logger) -> None:
        summary = FailureReporter(logger).report(fatal_result())

        assert summary.status == ExitStatus.FATAL
        assert summary.exit_code == ExitCode.ROLLOUT_FATAL
        assert summary.attempted == 3
        assert summary.healthy == 1
        assert summary.unhealthy == 2
        assert summary.failed_services == ["metrics", "api"]
        assert summary.halted_tier == 1
        assert summary.not_attempted == ["proxy"]

    def test_partial_exits_zero(self, logger) -> None:
        result = RolloutResult(status=ExitStatus.PARTIAL, tiers_attempted=[0])
        result.outcomes = {
            "db": outcome("db", 0, ServiceState.HEALTHY),
            "grafana": outcome("grafana", 0, ServiceState.UNHEALTHY, blocking=False),
        }

        summary = FailureReporter(logger).report(result)

        assert summary.exit_code == ExitCode.SUCCESS
        assert summary.failed_services == ["grafana"]

    def test_render_is_stable(self, logger) -> None:
        reporter = FailureReporter(logger)

        first = reporter.render(reporter.report(fatal_result()))
        second = reporter.render(reporter.report(fatal_result()))

        assert first == second
        data = json.loads(first)
        assert list(data) == sorted(data)
        assert data["exit_code"] == 4
        assert data["status"] == "fatal"

    def test_failures_logged_with_diagnostics(self, logger) -> None:
        FailureReporter(logger).report(fatal_result())

        errors = [e for e in logger.get_entries_by_level(LogLevel.ERROR) if e.component == "reporter"]
        assert [e.extra["service"] for e in errors] == ["metrics", "api"]
        assert errors[1].extra["diagnostics"]["log_tail"] == ["boom"]
        assert errors[0].extra["diagnostics"] is None


class TestReportFile:
    """Rapport JSON sur disque."""

    def test_report_written(self, logger, tmp_path) -> None:
        reporter = FailureReporter(logger, reports_dir=tmp_path / "reports")
        result = fatal_result()

        path = reporter.write_report(result, reporter.report(result), host={"disk": "ok"})

        assert path.name == "deployment-report-20260301-120042.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["duration_seconds"] == 42
        assert data["host"] == {"disk": "ok"}
        assert [s["name"] for s in data["services"]] == ["metrics", "postgres", "api", "proxy"]
        assert data["services"][2]["diagnostics"]["status"] == "exited"

    def test_no_reports_dir(self, logger) -> None:
        reporter = FailureReporter(logger)
        result = fatal_result()

        assert reporter.write_report(result, reporter.report(result)) is None

    def test_unwritable_dir_does_not_raise(self, logger, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        reporter = FailureReporter(logger, reports_dir=blocker / "reports")
        result = fatal_result()

        assert reporter.write_report(result, reporter.report(result)) is None
        assert any(e.message == "Cannot write deployment report" for e in logger.get_entries())


class BrokenLogsRuntime(FakeRuntime):
    async def fetch_logs(self, name: str, lines: int = 50) -> List[str]:
        raise RuntimeError("daemon gone")


class TestDiagnosticsCollector:
    """Capture statut + logs."""

    @pytest.mark.asyncio
    async def test_capture(self) -> None:
        runtime = FakeRuntime(statuses={"api": "exited"})

        snapshot = await DiagnosticsCollector(runtime).capture("api")

        assert snapshot.status == "exited"
        assert snapshot.log_tail == ["api log line 0", "api log line 1", "api log line 2"]
        assert snapshot.capture_error is None

    @pytest.mark.asyncio
    async def test_log_tail_truncated(self) -> None:
        snapshot = await DiagnosticsCollector(FakeRuntime(), log_lines=2).capture("api")

        assert snapshot.log_tail == ["api log line 1", "api log line 2"]

    @pytest.mark.asyncio
    async def test_capture_error_recorded(self) -> None:
        snapshot = await DiagnosticsCollector(BrokenLogsRuntime()).capture("api")

        assert snapshot.status == "running"
        assert snapshot.log_tail == []
        assert snapshot.capture_error == "logs: daemon gone"
