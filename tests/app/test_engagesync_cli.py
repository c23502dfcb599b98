from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from engagesync.domain.model import (
    ExecutionStatus,
    ExecutionType,
    PairResult,
    PipelineExecution,
    TriggerSource,
)
from engagesync.domain.pipeline import StopRequest
from engagesync.ui import cli

NOW = datetime(2025, 3, 1, 6, tzinfo=UTC)


def _execution(status: ExecutionStatus) -> PipelineExecution:
    execution = PipelineExecution(
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=TriggerSource.CRON,
        started_at=NOW,
    )
    execution.finish(status, now=NOW)
    return execution


def test_run_defaults_to_cron_trigger(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(**kwargs: object) -> PipelineExecution:
        captured.update(kwargs)
        return _execution(ExecutionStatus.SUCCESS)

    monkeypatch.setattr(cli, "run_daily_pipeline", fake_run)

    cli.main(["run"])

    assert captured["triggered_by"] is TriggerSource.CRON


def test_run_manual_flag_marks_cli_trigger(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(**kwargs: object) -> PipelineExecution:
        captured.update(kwargs)
        return _execution(ExecutionStatus.PARTIAL)

    monkeypatch.setattr(cli, "run_daily_pipeline", fake_run)

    cli.main(["run", "--manual"])

    assert captured["triggered_by"] is TriggerSource.CLI


def test_failed_execution_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "run_tag_rules_only", lambda **_: _execution(ExecutionStatus.FAILED))

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["tags-only"])

    assert excinfo.value.code == 1


def test_reconcile_passes_pair_and_reports_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, str]] = []

    def fake_reconcile(email: str, product: str) -> PairResult:
        calls.append((email, product))
        result = PairResult(member_email=email, product_code=product)
        result.record_error("Unknown member")
        return result

    monkeypatch.setattr(cli, "reconcile_pair", fake_reconcile)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["reconcile", "--email", "m@example.com", "--product", "PY101"])

    assert excinfo.value.code == 1
    assert calls == [("m@example.com", "PY101")]


def test_seed_passes_path(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Path] = []
    monkeypatch.setattr(cli, "seed_catalog_file", seen.append)

    cli.main(["seed", "catalog.toml"])

    assert seen == [Path("catalog.toml")]


def test_history_uses_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    limits: list[int] = []

    def fake_recent(limit: int) -> list[PipelineExecution]:
        limits.append(limit)
        return [_execution(ExecutionStatus.SUCCESS)]

    monkeypatch.setattr(cli, "recent_executions", fake_recent)

    cli.main(["history", "--limit", "3"])

    assert limits == [3]


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["history", "--limit", "0"],
        ["reconcile", "--email", "m@example.com"],
        ["unknown"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2


def test_unexpected_error_exits_with_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(**_: object) -> PipelineExecution:
        raise RuntimeError("database is gone")

    monkeypatch.setattr(cli, "run_daily_pipeline", broken)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run"])

    assert excinfo.value.code == 1


def test_run_hands_the_stop_request_to_the_pipeline(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(**kwargs: object) -> PipelineExecution:
        captured.update(kwargs)
        return _execution(ExecutionStatus.SUCCESS)

    monkeypatch.setattr(cli, "run_tag_rules_only", fake_run)

    cli.main(["tags-only"])

    assert captured["stop"] is cli.STOP


def test_first_ctrl_c_during_a_run_requests_stop(monkeypatch: pytest.MonkeyPatch) -> None:
    stop = StopRequest()
    monkeypatch.setattr(cli, "STOP", stop)
    stop.begin()

    cli.sigint_handler(2, None)

    assert stop.requested
    with pytest.raises(KeyboardInterrupt):
        cli.sigint_handler(2, None)


def test_ctrl_c_outside_a_run_interrupts(monkeypatch: pytest.MonkeyPatch) -> None:
    stop = StopRequest()
    monkeypatch.setattr(cli, "STOP", stop)

    with pytest.raises(KeyboardInterrupt):
        cli.sigint_handler(2, None)

    assert not stop.requested


def test_stopped_run_exits_with_interrupted_code(monkeypatch: pytest.MonkeyPatch) -> None:
    stop = StopRequest()
    monkeypatch.setattr(cli, "STOP", stop)

    def fake_run(**_: object) -> PipelineExecution:
        stop.begin()
        stop.request()
        stop.end()
        return _execution(ExecutionStatus.PARTIAL)

    monkeypatch.setattr(cli, "run_daily_pipeline", fake_run)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run"])

    assert excinfo.value.code == cli.INTERRUPTED_EXIT_CODE


def test_interrupted_run_exits_with_interrupted_code(monkeypatch: pytest.MonkeyPatch) -> None:
    def interrupted(**_: object) -> PipelineExecution:
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "run_daily_pipeline", interrupted)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run"])

    assert excinfo.value.code == cli.INTERRUPTED_EXIT_CODE
