"""Converge a member's CRM tags with the desired reengagement level."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.decision import TagDecision, decide_tag
from engagesync.domain.errors import (
    ConfigurationError,
    DataIntegrityError,
    FatalPipelineError,
    RemoteUnavailableError,
)
from engagesync.domain.model import (
    DEFAULT_COOLDOWN_DAYS,
    CommunicationKind,
    CommunicationLogEntry,
    EngagementSnapshot,
    EngagementState,
    PairResult,
    TagRemovalReason,
    normalize_email,
    normalize_product_code,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from engagesync.domain.model import ReengagementConfig, TagNamespace
    from engagesync.domain.ports import (
        EngagementRepositories,
        EngagementStateMirror,
        EngagementUnitOfWork,
        TagStore,
    )
    from engagesync.domain.tag_cache import TagCache

log = getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class TagDiff:
    to_remove: tuple[str, ...] = ()
    to_add: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.to_add


def plan_tag_changes(
    actual: Iterable[str],
    desired: Iterable[str],
    namespace: TagNamespace,
    *,
    hold: bool = False,
) -> TagDiff:
    """Diff namespace-filtered remote tags against the desired set.

    Removal candidates must also match the owned naming pattern. With ``hold``
    the desired tag is kept but never re-added.
    """

    actual_set = set(actual)
    desired_set = set(desired)
    to_remove = sorted(tag for tag in actual_set - desired_set if namespace.owns(tag))
    to_add = () if hold else tuple(sorted(desired_set - actual_set))
    return TagDiff(to_remove=tuple(to_remove), to_add=tuple(to_add))


@dataclass(slots=True)
class _AppliedChanges:
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TagReconciler:
    """Reconcile one (member, product) pair per call, each in its own unit of work."""

    unit_of_work_factory: Callable[[], EngagementUnitOfWork]
    tag_store: TagStore
    tag_cache: TagCache
    clock: Callable[[], datetime] = utcnow
    mirror: EngagementStateMirror | None = None

    def reconcile(self, member_email: str, product_code: str) -> PairResult:
        result = PairResult(
            member_email=normalize_email(member_email),
            product_code=normalize_product_code(product_code),
        )
        try:
            with self.unit_of_work_factory() as uow:
                state = self._reconcile(uow.repositories, result)
                uow.commit()
        except FatalPipelineError:
            raise
        except (ConfigurationError, DataIntegrityError, RemoteUnavailableError) as exc:
            log.warning(
                "Skipping %s/%s: %s", result.member_email, result.product_code, exc
            )
            result.record_error(str(exc))
            return result
        except Exception as exc:
            log.exception(
                "Reconciliation failed for %s/%s", result.member_email, result.product_code
            )
            result.record_error(f"{type(exc).__name__}: {exc}")
            return result

        self._publish(state)
        return result

    def _reconcile(self, repos: EngagementRepositories, result: PairResult) -> EngagementState:
        email = result.member_email
        code = result.product_code
        now = self.clock()

        product = repos.products.get_by_code(code)
        if product is None:
            raise DataIntegrityError(f"Unknown product {code}")
        if repos.members.get(email) is None:
            raise DataIntegrityError(f"Unknown member {email}")
        enrollment = repos.enrollments.get(email, product.id)
        if enrollment is None:
            raise DataIntegrityError(f"{email} is not enrolled in {code}")
        config = repos.reengagement_configs.get(code)
        if config is None:
            raise ConfigurationError(f"No reengagement config for {code}", product_code=code)

        state = repos.engagement_states.get(email, code)
        if state is None:
            state = EngagementState(member_email=email, product_code=code)
            repos.engagement_states.add(state)

        snapshot = enrollment.snapshot(now)
        decision = decide_tag(
            snapshot,
            config,
            current_tag=state.current_tag,
            cooldown_until=state.cooldown_until,
            now=now,
        )
        namespace = config.namespace

        remote_tags = self.tag_store.list_tags_for_contact(email)
        actual = namespace.filter(remote_tags)
        desired = [decision.tag_name] if decision.tag_name else []
        diff = plan_tag_changes(actual, desired, namespace, hold=decision.holds_current_tag)

        changes = self._apply(email, diff, result)
        result.tags_removed = changes.removed
        result.tags_applied = changes.added

        kind = self._update_state(state, decision, changes, actual, now)
        if kind is not None:
            self._log_communication(repos, state, kind, changes, snapshot, decision, now)
            result.communications_triggered = 1

        state.observe(
            snapshot.days_inactive,
            now=now,
            first_threshold=config.first_threshold,
            top_level=config.top_level,
        )
        if changes.removed or changes.added:
            log.info(
                "Reconciled %s/%s: +%s -%s",
                email,
                code,
                changes.added,
                changes.removed,
            )
        return state

    def _apply(self, email: str, diff: TagDiff, result: PairResult) -> _AppliedChanges:
        changes = _AppliedChanges()
        for tag in diff.to_remove:
            try:
                if self.tag_store.remove_tag(email, tag):
                    changes.removed.append(tag)
                else:
                    result.record_error(f"remove {tag!r} was declined")
            except RemoteUnavailableError as exc:
                result.record_error(f"remove {tag!r} failed: {exc}")
        for tag in diff.to_add:
            try:
                tag_id = self.tag_cache.get_or_create(tag)
                if self.tag_store.apply_tag(email, tag, tag_id=tag_id):
                    changes.added.append(tag)
                else:
                    result.record_error(f"apply {tag!r} was declined")
            except RemoteUnavailableError as exc:
                result.record_error(f"apply {tag!r} failed: {exc}")
        return changes

    def _update_state(
        self,
        state: EngagementState,
        decision: TagDecision,
        changes: _AppliedChanges,
        actual: list[str],
        now: datetime,
    ) -> CommunicationKind | None:
        previous_tag = state.current_tag
        desired_tag = decision.tag_name

        if changes.added:
            tag = changes.added[0]
            if tag == previous_tag:
                # restored after someone removed it by hand
                return CommunicationKind.APPLIED
            self._record_level(state, tag, decision, now)
            if previous_tag is not None:
                return CommunicationKind.ESCALATED
            return CommunicationKind.APPLIED

        if desired_tag is not None and desired_tag in actual and desired_tag != previous_tag:
            # remote already carries it, e.g. applied before a failed commit
            log.info("Adopting %r already on %s", desired_tag, state.member_email)
            self._record_level(state, desired_tag, decision, now)
            return CommunicationKind.CLEARED if changes.removed else None

        if previous_tag is not None and previous_tag in changes.removed:
            if decision.tag_name is None:
                state.mark_returned(now)
                return CommunicationKind.RETURNED
            state.clear_tag(now, TagRemovalReason.ESCALATED)
            return CommunicationKind.CLEARED

        if (
            previous_tag is not None
            and previous_tag not in actual
            and previous_tag != decision.tag_name
        ):
            state.clear_tag(now, TagRemovalReason.MANUAL_REMOVAL)

        if changes.removed:
            return CommunicationKind.CLEARED
        return None

    @staticmethod
    def _record_level(
        state: EngagementState, tag: str, decision: TagDecision, now: datetime
    ) -> None:
        level = decision.level
        state.apply_tag(
            tag,
            level=level.level if level else None,
            cooldown_days=level.cooldown_days if level else DEFAULT_COOLDOWN_DAYS,
            now=now,
        )

    def _log_communication(
        self,
        repos: EngagementRepositories,
        state: EngagementState,
        kind: CommunicationKind,
        changes: _AppliedChanges,
        snapshot: EngagementSnapshot,
        decision: TagDecision,
        now: datetime,
    ) -> None:
        if kind is CommunicationKind.RETURNED:
            pending = repos.communications.latest_pending(state.member_email, state.product_code)
            if pending is not None and set(pending.tags_applied) & set(changes.removed):
                pending.mark_returned(now)

        repos.communications.add(
            CommunicationLogEntry(
                member_email=state.member_email,
                product_code=state.product_code,
                kind=kind,
                level=decision.level.level if decision.level else None,
                tags_applied=list(changes.added),
                tags_removed=list(changes.removed),
                days_inactive=snapshot.days_inactive,
                last_activity=snapshot.last_activity,
                created_at=now,
            )
        )

    def _publish(self, state: EngagementState) -> None:
        if self.mirror is None:
            return
        try:
            self.mirror.publish(state)
        except Exception:  # noqa: BLE001
            log.warning(
                "Engagement state mirror failed for %s/%s",
                state.member_email,
                state.product_code,
                exc_info=True,
            )

    def flush_mirror(self) -> None:
        if self.mirror is None:
            return
        try:
            self.mirror.flush()
        except Exception:  # noqa: BLE001
            log.warning("Engagement state mirror could not be written", exc_info=True)


@dataclass(slots=True)
class ReconciliationStats:
    total: int = 0
    successful: int = 0
    failed: int = 0
    tags_applied: int = 0
    tags_removed: int = 0
    communications: int = 0
    by_product: dict[str, dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {"applied": 0, "removed": 0, "failed": 0})
    )

    def add(self, result: PairResult) -> None:
        self.total += 1
        product = self.by_product[result.product_code]
        if result.success:
            self.successful += 1
        else:
            self.failed += 1
            product["failed"] += 1
        self.tags_applied += len(result.tags_applied)
        self.tags_removed += len(result.tags_removed)
        self.communications += result.communications_triggered
        product["applied"] += len(result.tags_applied)
        product["removed"] += len(result.tags_removed)

    @property
    def success_rate(self) -> str:
        if self.total == 0:
            return "0.0%"
        return f"{self.successful / self.total * 100:.1f}%"


def summarize_pair_results(results: Iterable[PairResult]) -> ReconciliationStats:
    stats = ReconciliationStats()
    for result in results:
        stats.add(result)
    return stats


def check_config(config: ReengagementConfig) -> str | None:
    """Return the validation error for ``config`` or ``None`` when usable."""

    try:
        config.validate()
    except ConfigurationError as exc:
        return str(exc)
    return None
