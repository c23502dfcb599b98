from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from engagesync.domain.ingestion import ingest_enrollments
from engagesync.domain.model import EnrollmentStatus, Platform
from engagesync.domain.ports import EnrollmentRecord
from tests.helpers.engagement import NOW, add_product

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.helpers.engagement import FakeUnitOfWork, InMemoryData


def _record(
    email: str = "M@Example.com", code: str = "p", **kwargs: object
) -> EnrollmentRecord:
    return EnrollmentRecord(member_email=email, product_code=code, **kwargs)  # type: ignore[arg-type]


def test_ingest_inserts_members_and_enrollments(
    data: InMemoryData, uow_factory: Callable[[], FakeUnitOfWork]
) -> None:
    product = add_product(data, "P")
    last_seen = NOW - timedelta(days=3)

    stats = ingest_enrollments(
        [_record(last_activity=last_seen, member_name="Maria", class_memberships=("b", "a"))],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
    )

    assert stats.as_stats()["inserted"] == 1
    member = data.members["m@example.com"]
    assert member.name == "Maria"
    assert member.last_activity_on(Platform.HOTMART) == last_seen
    (enrollment,) = data.enrollments
    assert enrollment.product_id == product.id
    assert enrollment.class_memberships == ["a", "b"]


def test_ingest_updates_changed_and_counts_unchanged(
    data: InMemoryData, uow_factory: Callable[[], FakeUnitOfWork]
) -> None:
    add_product(data, "P")
    ingest_enrollments(
        [_record(access_count=1), _record("other@example.com", access_count=2)],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
    )

    stats = ingest_enrollments(
        [
            _record(access_count=5, status=EnrollmentStatus.INACTIVE),
            _record("other@example.com", access_count=2),
        ],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
    )

    assert (stats.updated, stats.unchanged, stats.inserted) == (1, 1, 0)
    assert data.enrollments[0].status is EnrollmentStatus.INACTIVE
    assert data.enrollments[0].access_count == 5


def test_ingest_never_moves_last_activity_backwards(
    data: InMemoryData, uow_factory: Callable[[], FakeUnitOfWork]
) -> None:
    add_product(data, "P")
    recent = NOW - timedelta(days=1)
    ingest_enrollments(
        [_record(last_activity=recent)],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
    )

    ingest_enrollments(
        [_record(last_activity=recent - timedelta(days=10))],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
    )

    assert data.enrollments[0].last_activity == recent
    assert data.members["m@example.com"].last_activity_on(Platform.HOTMART) == recent


def test_ingest_skips_unknown_products_and_rejects_bad_emails(
    data: InMemoryData, uow_factory: Callable[[], FakeUnitOfWork]
) -> None:
    add_product(data, "P")

    stats = ingest_enrollments(
        [_record(code="UNKNOWN"), _record(email="not-an-email"), _record()],
        platform=Platform.HOTMART,
        unit_of_work_factory=uow_factory,
        now=NOW,
        batch_size=2,
    )

    assert stats.total == 3
    assert stats.skipped == 1
    assert stats.inserted == 1
    assert len(stats.errors) == 1
    assert "not-an-email" in stats.errors[0]
    assert data.commits == 2
