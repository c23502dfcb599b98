"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.adapters.activecampaign import ActiveCampaignTagStore
from engagesync.adapters.catalog_file import SeedResult, load_catalog, seed_catalog
from engagesync.adapters.mirror import JsonlStateMirror
from engagesync.adapters.platforms import HttpEnrollmentSource
from engagesync.adapters.sqlalchemy import SqlAlchemyUnitOfWork, startup
from engagesync.adapters.sqlalchemy.unit_of_work import is_started
from engagesync.config import (
    MissingConfigurationError,
    get_pipeline_settings,
    get_platform_source_config,
    get_storage_config,
)
from engagesync.domain.model import ExecutionType, Platform, TriggerSource
from engagesync.domain.pipeline import (
    IngestStage,
    PipelineRunner,
    PreCreateTagsStage,
    RecalcEngagementStage,
    ReconcileTagsStage,
    StopRequest,
)
from engagesync.domain.ports import EngagementUnitOfWork
from engagesync.domain.reconciliation import TagReconciler
from engagesync.domain.tag_cache import TagCache

if TYPE_CHECKING:
    from pathlib import Path

    from engagesync.config import PipelineSettings
    from engagesync.domain.model import PairResult, PipelineExecution
    from engagesync.domain.pipeline import PipelineStage
    from engagesync.domain.ports import EngagementStateMirror, EnrollmentSource, TagStore

UnitOfWorkFactory = Callable[[], EngagementUnitOfWork]

INGEST_PLATFORMS: tuple[Platform, ...] = (Platform.HOTMART, Platform.CURSEDUCA)

log = getLogger(__name__)


def _ensure_started() -> None:
    if not is_started():
        startup()


def build_enrollment_sources() -> list[EnrollmentSource]:
    """Return a source for every platform whose credentials are configured."""

    sources: list[EnrollmentSource] = []
    for platform in INGEST_PLATFORMS:
        try:
            config = get_platform_source_config(platform)
        except MissingConfigurationError as exc:
            log.warning("Not ingesting %s: %s", platform, exc)
            continue
        sources.append(HttpEnrollmentSource(config))
    return sources


def default_state_mirror() -> EngagementStateMirror | None:
    path = get_storage_config().state_mirror_path()
    if path is None:
        log.info("Engagement state mirror is disabled")
        return None
    return JsonlStateMirror(path)


def build_runner(
    *,
    tag_store: TagStore,
    sources: list[EnrollmentSource],
    unit_of_work_factory: UnitOfWorkFactory,
    settings: PipelineSettings,
    mirror: EngagementStateMirror | None = None,
    stop: StopRequest | None = None,
) -> PipelineRunner:
    """Assemble the stage list; ingestion stages only run for the given sources."""

    def reconciler_factory(cache: TagCache) -> TagReconciler:
        return TagReconciler(
            unit_of_work_factory=unit_of_work_factory,
            tag_store=tag_store,
            tag_cache=cache,
            mirror=mirror,
        )

    stages: list[PipelineStage] = [
        IngestStage(source=source, unit_of_work_factory=unit_of_work_factory)
        for source in sources
    ]
    stages.append(RecalcEngagementStage(unit_of_work_factory=unit_of_work_factory))
    stages.append(
        PreCreateTagsStage(
            unit_of_work_factory=unit_of_work_factory,
            excluded_product_codes=settings.excluded_product_codes,
        )
    )
    stages.append(
        ReconcileTagsStage(
            unit_of_work_factory=unit_of_work_factory,
            reconciler_factory=reconciler_factory,
            excluded_product_codes=settings.excluded_product_codes,
            progress_step_percent=settings.progress_step_percent,
            large_batch_threshold=settings.large_batch_threshold,
            large_batch_every=settings.large_batch_log_every,
        )
    )
    return PipelineRunner(
        stages=stages,
        unit_of_work_factory=unit_of_work_factory,
        tag_cache_factory=lambda: TagCache(
            tag_store, delay_seconds=settings.remote_call_delay_seconds
        ),
        max_error_messages=settings.max_error_messages,
        stop=stop or StopRequest(),
    )


def run_daily_pipeline(
    *,
    tag_store: TagStore | None = None,
    sources: list[EnrollmentSource] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: PipelineSettings | None = None,
    mirror: EngagementStateMirror | None = None,
    triggered_by: TriggerSource = TriggerSource.CRON,
    stop: StopRequest | None = None,
) -> PipelineExecution:
    """Ingest, recalculate, pre-create tags and reconcile every eligible pair."""

    _ensure_started()
    effective_sources = build_enrollment_sources() if sources is None else sources
    return _run(
        tag_store=tag_store,
        sources=effective_sources,
        unit_of_work_factory=unit_of_work_factory,
        settings=settings,
        mirror=mirror,
        stop=stop,
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=triggered_by,
    )


def run_tag_rules_only(
    *,
    tag_store: TagStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: PipelineSettings | None = None,
    mirror: EngagementStateMirror | None = None,
    triggered_by: TriggerSource = TriggerSource.CLI,
    stop: StopRequest | None = None,
) -> PipelineExecution:
    """Skip ingestion and run the tag stages against the stored enrollments."""

    _ensure_started()
    return _run(
        tag_store=tag_store,
        sources=[],
        unit_of_work_factory=unit_of_work_factory,
        settings=settings,
        mirror=mirror,
        stop=stop,
        execution_type=ExecutionType.MANUAL,
        triggered_by=triggered_by,
    )


def _run(
    *,
    tag_store: TagStore | None,
    sources: list[EnrollmentSource],
    unit_of_work_factory: UnitOfWorkFactory | None,
    settings: PipelineSettings | None,
    mirror: EngagementStateMirror | None,
    stop: StopRequest | None,
    execution_type: ExecutionType,
    triggered_by: TriggerSource,
) -> PipelineExecution:
    effective_settings = settings or get_pipeline_settings()
    effective_uow = unit_of_work_factory or SqlAlchemyUnitOfWork
    effective_mirror = mirror or default_state_mirror()

    if tag_store is not None:
        runner = build_runner(
            tag_store=tag_store,
            sources=sources,
            unit_of_work_factory=effective_uow,
            settings=effective_settings,
            mirror=effective_mirror,
            stop=stop,
        )
        return runner.run(execution_type=execution_type, triggered_by=triggered_by)

    with ActiveCampaignTagStore() as store:
        runner = build_runner(
            tag_store=store,
            sources=sources,
            unit_of_work_factory=effective_uow,
            settings=effective_settings,
            mirror=effective_mirror,
            stop=stop,
        )
        return runner.run(execution_type=execution_type, triggered_by=triggered_by)


def reconcile_pair(
    member_email: str,
    product_code: str,
    *,
    tag_store: TagStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    mirror: EngagementStateMirror | None = None,
) -> PairResult:
    """Reconcile a single pair outside of a pipeline execution."""

    _ensure_started()
    effective_uow = unit_of_work_factory or SqlAlchemyUnitOfWork
    effective_mirror = mirror or default_state_mirror()

    def reconcile_with(store: TagStore) -> PairResult:
        reconciler = TagReconciler(
            unit_of_work_factory=effective_uow,
            tag_store=store,
            tag_cache=TagCache(store),
            mirror=effective_mirror,
        )
        try:
            return reconciler.reconcile(member_email, product_code)
        finally:
            reconciler.flush_mirror()

    if tag_store is not None:
        result = reconcile_with(tag_store)
    else:
        with ActiveCampaignTagStore() as store:
            result = reconcile_with(store)

    if result.changed or not result.success:
        with effective_uow() as uow:
            uow.repositories.pair_results.add(result)
            uow.commit()
    log.info(
        f"Reconciled {result.member_email}/{result.product_code}: "
        f"applied={result.tags_applied}, removed={result.tags_removed}, "
        f"success={result.success}"
    )
    return result


def seed_catalog_file(
    path: Path,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> SeedResult:
    _ensure_started()
    catalog = load_catalog(path)
    return seed_catalog(catalog, unit_of_work_factory=unit_of_work_factory or SqlAlchemyUnitOfWork)


def recent_executions(
    limit: int = 10,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[PipelineExecution]:
    _ensure_started()
    with (unit_of_work_factory or SqlAlchemyUnitOfWork)() as uow:
        return uow.repositories.executions.recent(limit)
