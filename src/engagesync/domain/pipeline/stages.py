"""Named pipeline stages and the value types they report with."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from engagesync.domain.engagement import recalculate_engagement
from engagesync.domain.ingestion import ingest_enrollments
from engagesync.domain.model import StageStatus
from engagesync.domain.reconciliation import check_config, summarize_pair_results

from .progress import ProgressTracker

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from engagesync.domain.model import PairResult, PipelineExecution, StatValue
    from engagesync.domain.ports import EngagementUnitOfWork, EnrollmentSource
    from engagesync.domain.reconciliation import TagReconciler
    from engagesync.domain.tag_cache import TagCache

log = getLogger(__name__)

INGEST_STAGE_PREFIX = "ingest-"
RECALC_STAGE = "recalc-engagement"
PRE_CREATE_STAGE = "pre-create-tags"
RECONCILE_STAGE = "reconcile-tags"


@dataclass(slots=True)
class StopRequest:
    """Operator request to end a run once the pair in flight is done.

    Only honoured while a run is active; ``request`` returns False otherwise so
    the caller can fall back to interrupting.
    """

    active: bool = False
    requested: bool = False

    def begin(self) -> None:
        self.active = True
        self.requested = False

    def end(self) -> None:
        self.active = False

    def request(self) -> bool:
        if not self.active:
            return False
        self.requested = True
        return True


@dataclass(frozen=True, slots=True)
class StageOutcome:
    """What a stage reports when it ran to completion.

    Item-level errors make the outcome ``PARTIAL``; a stage that cannot finish
    raises instead and the runner records it as ``FAILED``.
    """

    stats: Mapping[str, StatValue] = field(default_factory=dict)
    errors: tuple[str, ...] = ()

    @property
    def status(self) -> StageStatus:
        return StageStatus.PARTIAL if self.errors else StageStatus.SUCCESS


@dataclass(slots=True)
class RunContext:
    """Objects shared by the stages of one execution."""

    execution: PipelineExecution
    tag_cache: TagCache
    clock: Callable[[], datetime]
    stop: StopRequest = field(default_factory=StopRequest)


class PipelineStage(Protocol):
    """Contract implemented by each pipeline stage."""

    @property
    def name(self) -> str: ...

    def run(self, context: RunContext) -> StageOutcome: ...


@dataclass(slots=True)
class IngestStage:
    source: EnrollmentSource
    unit_of_work_factory: Callable[[], EngagementUnitOfWork]

    @property
    def name(self) -> str:
        return f"{INGEST_STAGE_PREFIX}{self.source.platform.value.lower()}"

    def run(self, context: RunContext) -> StageOutcome:
        fetched = self.source()
        stats = ingest_enrollments(
            fetched.records,
            platform=self.source.platform,
            unit_of_work_factory=self.unit_of_work_factory,
            now=context.clock(),
        )
        return StageOutcome(
            stats={**stats.as_stats(), "pages": fetched.pages, "rejected": fetched.rejected},
            errors=tuple(stats.errors),
        )


@dataclass(slots=True)
class RecalcEngagementStage:
    unit_of_work_factory: Callable[[], EngagementUnitOfWork]
    name: str = RECALC_STAGE

    def run(self, context: RunContext) -> StageOutcome:
        stats = recalculate_engagement(
            unit_of_work_factory=self.unit_of_work_factory, now=context.clock()
        )
        return StageOutcome(stats=stats.as_stats())


@dataclass(slots=True)
class PreCreateTagsStage:
    unit_of_work_factory: Callable[[], EngagementUnitOfWork]
    excluded_product_codes: frozenset[str] = frozenset()
    name: str = PRE_CREATE_STAGE

    def run(self, context: RunContext) -> StageOutcome:
        errors: list[str] = []
        names: set[str] = set()
        with self.unit_of_work_factory() as uow:
            configs = uow.repositories.reengagement_configs.list_active()
        for config in configs:
            if config.product_code in self.excluded_product_codes:
                continue
            problem = check_config(config)
            if problem is not None:
                errors.append(problem)
                continue
            names.update(config.qualified_tag_names())

        result = context.tag_cache.prime(names)
        errors.extend(f"tag {name!r} could not be created" for name in result.failed)
        return StageOutcome(stats=result.as_stats(), errors=tuple(errors))


@dataclass(frozen=True, slots=True)
class PairKey:
    member_email: str
    product_code: str


@dataclass(slots=True)
class PairSelection:
    pairs: list[PairKey] = field(default_factory=list)
    excluded: int = 0
    retired: int = 0
    orphaned: int = 0
    unconfigured: int = 0


@dataclass(slots=True)
class ReconcileTagsStage:
    """Reconcile every eligible active pair, one at a time."""

    unit_of_work_factory: Callable[[], EngagementUnitOfWork]
    reconciler_factory: Callable[[TagCache], TagReconciler]
    excluded_product_codes: frozenset[str] = frozenset()
    progress_step_percent: int = 5
    large_batch_threshold: int = 2000
    large_batch_every: int = 100
    name: str = RECONCILE_STAGE

    def run(self, context: RunContext) -> StageOutcome:
        selection = self.select_pairs(context.clock())
        reconciler = self.reconciler_factory(context.tag_cache)
        tracker = ProgressTracker(
            total=len(selection.pairs),
            label="pairs",
            step_percent=self.progress_step_percent,
            large_batch_threshold=self.large_batch_threshold,
            large_batch_every=self.large_batch_every,
        )
        log.info(
            "Reconciling %s pairs (excluded=%s, retired=%s, orphaned=%s, unconfigured=%s)",
            len(selection.pairs),
            selection.excluded,
            selection.retired,
            selection.orphaned,
            selection.unconfigured,
        )

        results: list[PairResult] = []
        applied = removed = failed = 0
        tracker.start()
        try:
            for pair in selection.pairs:
                if context.stop.requested:
                    break
                result = reconciler.reconcile(pair.member_email, pair.product_code)
                result.execution_id = context.execution.id
                results.append(result)
                applied += len(result.tags_applied)
                removed += len(result.tags_removed)
                failed += 0 if result.success else 1
                tracker.advance(applied=applied, removed=removed, errors=failed)
        finally:
            reconciler.flush_mirror()

        self._persist_results(results)
        errors = [
            f"{result.member_email}/{result.product_code}: {result.error}"
            for result in results
            if not result.success
        ]
        not_reached = len(selection.pairs) - len(results)
        if not_reached:
            log.warning("Stopped by operator with %s pairs not reconciled", not_reached)
            errors.append(
                f"stopped by operator after {len(results)} of {len(selection.pairs)} pairs"
            )
        stats = summarize_pair_results(results)
        for code, counts in sorted(stats.by_product.items()):
            log.info(
                "Product %s: applied=%s, removed=%s, failed=%s",
                code,
                counts["applied"],
                counts["removed"],
                counts["failed"],
            )
        return StageOutcome(
            stats={
                "pairs_total": stats.total,
                "pairs_succeeded": stats.successful,
                "pairs_failed": stats.failed,
                "success_rate": stats.success_rate,
                "tags_applied": stats.tags_applied,
                "tags_removed": stats.tags_removed,
                "communications": stats.communications,
                "skipped_excluded": selection.excluded,
                "skipped_retired": selection.retired,
                "skipped_orphaned": selection.orphaned,
                "skipped_unconfigured": selection.unconfigured,
                "pairs_not_reached": not_reached,
            },
            errors=tuple(errors),
        )

    def select_pairs(self, now: datetime) -> PairSelection:
        selection = PairSelection()
        with self.unit_of_work_factory() as uow:
            repos = uow.repositories
            products = {product.id: product for product in repos.products.list_all()}
            configs = {
                config.product_code: config for config in repos.reengagement_configs.list_active()
            }
            for enrollment in repos.enrollments.list_active():
                product = products.get(enrollment.product_id)
                if product is None or repos.members.get(enrollment.member_email) is None:
                    log.warning(
                        "Skipping orphan enrollment %s of %s",
                        enrollment.id,
                        enrollment.member_email,
                    )
                    selection.orphaned += 1
                    continue
                if product.code in self.excluded_product_codes:
                    selection.excluded += 1
                    continue
                config = configs.get(product.code)
                if config is None:
                    selection.unconfigured += 1
                    continue
                if config.retires(enrollment.snapshot(now)):
                    selection.retired += 1
                    continue
                selection.pairs.append(
                    PairKey(member_email=enrollment.member_email, product_code=product.code)
                )
        selection.pairs.sort(key=lambda pair: (pair.product_code, pair.member_email))
        return selection

    def _persist_results(self, results: list[PairResult]) -> None:
        worth_keeping = [result for result in results if result.changed or not result.success]
        if not worth_keeping:
            return
        with self.unit_of_work_factory() as uow:
            for result in worth_keeping:
                uow.repositories.pair_results.add(result)
            uow.commit()
