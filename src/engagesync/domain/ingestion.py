"""Upsert normalized platform enrollments into the local store."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.model import (
    Enrollment,
    Member,
    normalize_email,
    normalize_product_code,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from datetime import datetime

    from engagesync.domain.model import Platform
    from engagesync.domain.ports import (
        EngagementRepositories,
        EngagementUnitOfWork,
        EnrollmentRecord,
    )

log = getLogger(__name__)

DEFAULT_INGEST_BATCH_SIZE = 200


@dataclass(slots=True)
class IngestStats:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_stats(self) -> dict[str, int]:
        return {
            "ingested": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": len(self.errors),
        }


def ingest_enrollments(
    records: Iterable[EnrollmentRecord],
    *,
    platform: Platform,
    unit_of_work_factory: Callable[[], EngagementUnitOfWork],
    now: datetime,
    batch_size: int = DEFAULT_INGEST_BATCH_SIZE,
) -> IngestStats:
    """Persist ``records`` in batches, one unit of work per batch."""

    stats = IngestStats()
    batch: list[EnrollmentRecord] = []
    for record in records:
        batch.append(record)
        if len(batch) >= batch_size:
            _ingest_batch(batch, platform, unit_of_work_factory, now, stats)
            batch = []
    if batch:
        _ingest_batch(batch, platform, unit_of_work_factory, now, stats)

    log.info(
        f"Ingested {platform} enrollments: total={stats.total}, inserted={stats.inserted}, "
        f"updated={stats.updated}, unchanged={stats.unchanged}, skipped={stats.skipped}, "
        f"errors={len(stats.errors)}"
    )
    return stats


def _ingest_batch(
    batch: Sequence[EnrollmentRecord],
    platform: Platform,
    unit_of_work_factory: Callable[[], EngagementUnitOfWork],
    now: datetime,
    stats: IngestStats,
) -> None:
    with unit_of_work_factory() as uow:
        for record in batch:
            stats.total += 1
            try:
                _ingest_record(uow.repositories, record, platform, now, stats)
            except ValueError as exc:
                log.warning(
                    "Rejected enrollment %s/%s: %s", record.member_email, record.product_code, exc
                )
                stats.errors.append(f"{record.member_email}/{record.product_code}: {exc}")
        uow.commit()


def _ingest_record(
    repos: EngagementRepositories,
    record: EnrollmentRecord,
    platform: Platform,
    now: datetime,
    stats: IngestStats,
) -> None:
    email = normalize_email(record.member_email)
    if not email or "@" not in email:
        raise ValueError(f"invalid member email {record.member_email!r}")

    product = repos.products.get_by_code(normalize_product_code(record.product_code))
    if product is None:
        log.warning("Skipping enrollment of %s: unknown product %s", email, record.product_code)
        stats.skipped += 1
        return

    member = repos.members.get(email)
    if member is None:
        member = Member(email=email, name=record.member_name, created_at=now, updated_at=now)
        repos.members.add(member)
    elif record.member_name and not member.name:
        member.name = record.member_name
        member.updated_at = now
    if record.last_activity is not None and member.record_activity(platform, record.last_activity):
        member.updated_at = now

    enrollment = repos.enrollments.get(email, product.id)
    if enrollment is None:
        repos.enrollments.add(
            Enrollment(
                member_email=email,
                product_id=product.id,
                platform=platform,
                status=record.status,
                access_count=record.access_count,
                last_activity=record.last_activity,
                progress_percentage=record.progress_percentage,
                enrolled_at=record.enrolled_at,
                class_memberships=sorted(set(record.class_memberships)),
                updated_at=now,
            )
        )
        stats.inserted += 1
        return

    if _apply_record(enrollment, record):
        enrollment.updated_at = now
        stats.updated += 1
    else:
        stats.unchanged += 1


def _apply_record(enrollment: Enrollment, record: EnrollmentRecord) -> bool:
    changed = False
    if enrollment.status != record.status:
        enrollment.status = record.status
        changed = True
    if enrollment.access_count != record.access_count:
        enrollment.access_count = record.access_count
        changed = True
    if record.last_activity is not None and (
        enrollment.last_activity is None or record.last_activity > enrollment.last_activity
    ):
        enrollment.last_activity = record.last_activity
        changed = True
    if enrollment.progress_percentage != record.progress_percentage:
        enrollment.progress_percentage = record.progress_percentage
        changed = True
    if record.enrolled_at is not None and enrollment.enrolled_at != record.enrolled_at:
        enrollment.enrolled_at = record.enrolled_at
        changed = True
    memberships = sorted(set(record.class_memberships))
    if sorted(enrollment.class_memberships) != memberships:
        enrollment.class_memberships = memberships
        changed = True
    return changed
