"""Refresh derived engagement metrics on active enrollments."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.model import whole_days_between

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from engagesync.domain.model import Enrollment, Member, Product
    from engagesync.domain.ports import EngagementUnitOfWork

log = getLogger(__name__)


@dataclass(slots=True)
class RecalcStats:
    total: int = 0
    processed: int = 0
    updated: int = 0
    skipped: int = 0

    def as_stats(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "engagement_updated": self.updated,
            "skipped": self.skipped,
        }


def refresh_engagement(
    enrollment: Enrollment, member: Member, product: Product, now: datetime
) -> bool:
    """Merge platform activity into ``enrollment`` and recompute day counters.

    Returns whether anything changed.
    """

    changed = False
    platform_activity = member.last_activity_on(product.platform)
    if platform_activity is not None and (
        enrollment.last_activity is None or platform_activity > enrollment.last_activity
    ):
        enrollment.last_activity = platform_activity
        changed = True

    days_since_activity = (
        whole_days_between(enrollment.last_activity, now)
        if enrollment.last_activity is not None
        else None
    )
    if enrollment.days_since_last_activity != days_since_activity:
        enrollment.days_since_last_activity = days_since_activity
        changed = True

    days_since_enrollment = (
        whole_days_between(enrollment.enrolled_at, now) if enrollment.enrolled_at else None
    )
    if enrollment.days_since_enrollment != days_since_enrollment:
        enrollment.days_since_enrollment = days_since_enrollment
        changed = True

    if changed:
        enrollment.updated_at = now
    return changed


def recalculate_engagement(
    *,
    unit_of_work_factory: Callable[[], EngagementUnitOfWork],
    now: datetime,
) -> RecalcStats:
    stats = RecalcStats()
    with unit_of_work_factory() as uow:
        repos = uow.repositories
        enrollments = repos.enrollments.list_active()
        stats.total = len(enrollments)
        products = {product.id: product for product in repos.products.list_all()}

        for enrollment in enrollments:
            product = products.get(enrollment.product_id)
            member = repos.members.get(enrollment.member_email)
            if product is None or member is None:
                log.warning(
                    "Skipping engagement of %s: missing %s",
                    enrollment.member_email,
                    "product" if product is None else "member",
                )
                stats.skipped += 1
                continue
            stats.processed += 1
            if refresh_engagement(enrollment, member, product, now):
                stats.updated += 1

        uow.commit()

    log.info(
        f"Engagement recalculated: total={stats.total}, updated={stats.updated}, "
        f"skipped={stats.skipped}"
    )
    return stats
