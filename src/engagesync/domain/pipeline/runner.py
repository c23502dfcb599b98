"""Run pipeline stages in order and keep an audit record of the execution."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.errors import FatalPipelineError
from engagesync.domain.model import (
    ExecutionStatus,
    ExecutionType,
    PipelineExecution,
    StageResult,
    StageStatus,
    TriggerSource,
)

from .stages import INGEST_STAGE_PREFIX, RunContext, StopRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from engagesync.domain.ports import EngagementUnitOfWork
    from engagesync.domain.tag_cache import TagCache

    from .stages import PipelineStage

log = getLogger(__name__)

DEFAULT_MAX_ERROR_MESSAGES = 50
STALE_RUN_MESSAGE = "Process ended before the execution finished"


def _utcnow() -> datetime:
    return datetime.now(UTC)


_SUMMED_STAT_KEYS = (
    "engagement_updated",
    "tags_applied",
    "tags_removed",
    "pairs_total",
    "pairs_failed",
)


def _as_int(value: object) -> int:
    return value if isinstance(value, int) else 0


def summarize_stages(stages: Iterable[StageResult]) -> dict[str, int]:
    """Aggregate the counters operators look at first."""

    summary = dict.fromkeys(("records_ingested", *_SUMMED_STAT_KEYS, "stages_failed"), 0)
    for stage in stages:
        if stage.status is StageStatus.FAILED:
            summary["stages_failed"] += 1
        if stage.name.startswith(INGEST_STAGE_PREFIX):
            summary["records_ingested"] += _as_int(stage.stats.get("ingested"))
        for key in _SUMMED_STAT_KEYS:
            summary[key] += _as_int(stage.stats.get(key))
    return summary


@dataclass(slots=True)
class PipelineRunner:
    """Execute ``stages`` sequentially with per-stage failure isolation.

    A stage that raises is recorded as failed and the next stage still runs.
    Only ``FatalPipelineError``, or a failure outside the stages themselves,
    aborts the run; the execution record is persisted either way. A requested
    stop ends the run as partial once the pair in flight is done, and a
    ``KeyboardInterrupt`` is recorded as failed before it propagates.
    """

    stages: Sequence[PipelineStage]
    unit_of_work_factory: Callable[[], EngagementUnitOfWork]
    tag_cache_factory: Callable[[], TagCache]
    clock: Callable[[], datetime] = _utcnow
    max_error_messages: int = DEFAULT_MAX_ERROR_MESSAGES
    timer: Callable[[], float] = field(default=time.perf_counter)
    stop: StopRequest = field(default_factory=StopRequest)

    def with_stage(self, stage: PipelineStage) -> PipelineRunner:
        """Return a new runner appending ``stage`` at the end."""

        return PipelineRunner(
            stages=(*self.stages, stage),
            unit_of_work_factory=self.unit_of_work_factory,
            tag_cache_factory=self.tag_cache_factory,
            clock=self.clock,
            max_error_messages=self.max_error_messages,
            timer=self.timer,
            stop=self.stop,
        )

    def run(
        self,
        *,
        execution_type: ExecutionType = ExecutionType.AUTOMATIC,
        triggered_by: TriggerSource = TriggerSource.CRON,
    ) -> PipelineExecution:
        execution = PipelineExecution(
            execution_type=execution_type,
            triggered_by=triggered_by,
            started_at=self.clock(),
        )
        log.info(
            "Starting pipeline %s (%s, %s) with stages: %s",
            execution.id,
            execution_type,
            triggered_by,
            ", ".join(stage.name for stage in self.stages),
        )

        self.stop.begin()
        try:
            status = self._run_stages(execution)
        except KeyboardInterrupt:
            log.warning("Pipeline %s interrupted by operator", execution.id)
            execution.add_errors(["Interrupted by operator"], cap=self.max_error_messages)
            self._finalize(execution, ExecutionStatus.FAILED)
            raise
        finally:
            self.stop.end()
        self._finalize(execution, status)
        return execution

    def _run_stages(self, execution: PipelineExecution) -> ExecutionStatus:
        try:
            self._close_stale_runs()
            self._save(execution)
            context = RunContext(
                execution=execution,
                tag_cache=self.tag_cache_factory(),
                clock=self.clock,
                stop=self.stop,
            )
            for index, stage in enumerate(self.stages):
                if self.stop.requested:
                    skipped = [pending.name for pending in self.stages[index:]]
                    log.warning("Stop requested; skipping stages %s", ", ".join(skipped))
                    execution.add_errors(
                        [f"Stopped by operator before: {', '.join(skipped)}"],
                        cap=self.max_error_messages,
                    )
                    break
                execution.record_stage(self._run_stage(stage, context))
        except Exception as exc:
            log.exception("Pipeline %s aborted", execution.id)
            execution.add_errors([f"Fatal: {exc}"], cap=self.max_error_messages)
            return ExecutionStatus.FAILED

        if self.stop.requested or not all(stage.success for stage in execution.stages):
            return ExecutionStatus.PARTIAL
        return ExecutionStatus.SUCCESS

    def _finalize(self, execution: PipelineExecution, status: ExecutionStatus) -> None:
        execution.summary = summarize_stages(execution.stages)
        execution.finish(status, now=self.clock())
        self._persist_final(execution)
        log.info(
            "Pipeline %s finished with status %s in %ss: %s",
            execution.id,
            execution.status,
            execution.duration_seconds,
            execution.summary,
        )

    def _close_stale_runs(self) -> None:
        """Finish executions a previous process left ``RUNNING`` as partial."""

        try:
            with self.unit_of_work_factory() as uow:
                executions = uow.repositories.executions
                stale = executions.list_running()
                for previous in stale:
                    previous.add_errors([STALE_RUN_MESSAGE], cap=self.max_error_messages)
                    previous.summary = summarize_stages(previous.stages)
                    previous.finish(ExecutionStatus.PARTIAL, now=self.clock())
                    executions.add(previous)
                uow.commit()
        except Exception as exc:
            raise FatalPipelineError(f"Could not close unfinished executions: {exc}") from exc
        for previous in stale:
            log.warning(
                "Execution %s started at %s never finished; marked %s",
                previous.id,
                previous.started_at.isoformat(),
                previous.status,
            )

    def _run_stage(self, stage: PipelineStage, context: RunContext) -> StageResult:
        log.info("Stage %s started", stage.name)
        started = self.timer()
        try:
            outcome = stage.run(context)
        except FatalPipelineError:
            raise
        except Exception as exc:
            duration = round(self.timer() - started, 3)
            log.exception("Stage %s failed after %ss", stage.name, duration)
            context.execution.add_errors(
                [f"{stage.name}: {exc}"], cap=self.max_error_messages
            )
            return StageResult(
                name=stage.name,
                status=StageStatus.FAILED,
                duration_seconds=duration,
                error=f"{type(exc).__name__}: {exc}",
            )

        duration = round(self.timer() - started, 3)
        context.execution.add_errors(
            [f"{stage.name}: {message}" for message in outcome.errors],
            cap=self.max_error_messages,
        )
        log.info(
            "Stage %s finished with %s in %ss: %s",
            stage.name,
            outcome.status,
            duration,
            dict(outcome.stats),
        )
        return StageResult(
            name=stage.name,
            status=outcome.status,
            duration_seconds=duration,
            stats=dict(outcome.stats),
            error=f"{len(outcome.errors)} item errors" if outcome.errors else None,
        )

    def _save(self, execution: PipelineExecution) -> None:
        try:
            with self.unit_of_work_factory() as uow:
                uow.repositories.executions.add(execution)
                uow.commit()
        except Exception as exc:
            raise FatalPipelineError(f"Could not record pipeline execution: {exc}") from exc

    def _persist_final(self, execution: PipelineExecution) -> None:
        try:
            self._save(execution)
        except FatalPipelineError:
            log.exception("Final state of pipeline %s was not persisted", execution.id)
