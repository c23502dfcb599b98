from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from engagesync.domain.engagement import recalculate_engagement, refresh_engagement
from engagesync.domain.model import Enrollment, Member, Platform, Product
from tests.helpers.engagement import NOW, add_product, enroll

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.helpers.engagement import FakeUnitOfWork, InMemoryData


def test_refresh_engagement_prefers_newer_platform_activity(data: InMemoryData) -> None:
    product = add_product(data, "P", platform=Platform.CURSEDUCA)
    enrollment = enroll(data, product, days_inactive=30)
    member = data.members[enrollment.member_email]
    member.record_activity(Platform.CURSEDUCA, NOW - timedelta(days=2))
    member.record_activity(Platform.HOTMART, NOW)

    changed = refresh_engagement(enrollment, member, product, NOW)

    assert changed
    assert enrollment.days_since_last_activity == 2
    assert enrollment.days_since_enrollment == 120
    assert enrollment.updated_at == NOW


def test_refresh_engagement_reports_no_change_when_already_current(data: InMemoryData) -> None:
    product = add_product(data, "P")
    enrollment = enroll(data, product, days_inactive=4)
    member = data.members[enrollment.member_email]
    refresh_engagement(enrollment, member, product, NOW)

    assert not refresh_engagement(enrollment, member, product, NOW)


def test_refresh_engagement_keeps_missing_signal_missing() -> None:
    product = Product(code="P", platform=Platform.HOTMART)
    member = Member(email="new@example.com")
    enrollment = Enrollment(
        member_email="new@example.com", product_id=product.id, platform=Platform.HOTMART
    )

    refresh_engagement(enrollment, member, product, NOW)

    assert enrollment.days_since_last_activity is None
    assert enrollment.snapshot(NOW).days_inactive is None


def test_recalculate_engagement_skips_orphans(
    data: InMemoryData, uow_factory: Callable[[], FakeUnitOfWork]
) -> None:
    product = add_product(data, "P")
    enroll(data, product, "a@example.com", days_inactive=3)
    orphan = enroll(data, product, "b@example.com", days_inactive=3)
    del data.members[orphan.member_email]

    stats = recalculate_engagement(unit_of_work_factory=uow_factory, now=NOW)

    assert stats.as_stats() == {
        "total": 2,
        "processed": 1,
        "engagement_updated": 1,
        "skipped": 1,
    }
