"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session  # noqa: TC002

from engagesync.adapters.sqlalchemy.repositories import (
    SqlAlchemyCommunicationLogRepository,
    SqlAlchemyEngagementStateRepository,
    SqlAlchemyEnrollmentRepository,
    SqlAlchemyPipelineExecutionRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyReengagementConfigRepository,
)
from engagesync.domain.model import (
    CommunicationKind,
    CommunicationLogEntry,
    EngagementState,
    Enrollment,
    EnrollmentStatus,
    ExecutionStatus,
    ExecutionType,
    PipelineExecution,
    Platform,
    Product,
    ReengagementConfig,
    TriggerSource,
)

NOW = datetime(2025, 3, 1, 12, tzinfo=UTC)


def test_product_repository_finds_by_normalized_code(sqlite_session: Session) -> None:
    repository = SqlAlchemyProductRepository(sqlite_session)
    product = Product(code="py101", platform=Platform.HOTMART)
    repository.add(product)
    sqlite_session.commit()

    assert repository.get_by_code(" PY101 ") is product
    assert repository.get(product.id) is product
    assert repository.get_by_code("OTHER") is None


def test_enrollment_repository_lists_active_only(sqlite_session: Session) -> None:
    repository = SqlAlchemyEnrollmentRepository(sqlite_session)
    product = Product(code="P", platform=Platform.HOTMART)
    sqlite_session.add(product)
    active = Enrollment(
        member_email="a@example.com", product_id=product.id, platform=Platform.HOTMART
    )
    inactive = Enrollment(
        member_email="b@example.com",
        product_id=product.id,
        platform=Platform.HOTMART,
        status=EnrollmentStatus.INACTIVE,
    )
    repository.add(active)
    repository.add(inactive)
    sqlite_session.commit()

    assert repository.list_active() == [active]
    assert repository.get("A@example.com", product.id) is active


def test_config_repository_skips_disabled_configs(sqlite_session: Session) -> None:
    repository = SqlAlchemyReengagementConfigRepository(sqlite_session)
    repository.add(ReengagementConfig(product_code="A"))
    repository.add(ReengagementConfig(product_code="B", is_active=False))
    sqlite_session.commit()

    assert [config.product_code for config in repository.list_active()] == ["A"]
    assert repository.get("b") is not None


def test_state_repository_keys_by_pair(sqlite_session: Session) -> None:
    repository = SqlAlchemyEngagementStateRepository(sqlite_session)
    state = EngagementState(member_email="m@example.com", product_code="P")
    repository.add(state)
    sqlite_session.commit()

    assert repository.get("M@example.com", "p") is state
    assert repository.get("m@example.com", "Q") is None


def test_communication_repository_latest_pending(sqlite_session: Session) -> None:
    repository = SqlAlchemyCommunicationLogRepository(sqlite_session)

    def entry(kind: CommunicationKind, offset: int) -> CommunicationLogEntry:
        return CommunicationLogEntry(
            member_email="m@example.com",
            product_code="P",
            kind=kind,
            created_at=NOW + timedelta(days=offset),
        )

    applied = entry(CommunicationKind.APPLIED, 0)
    escalated = entry(CommunicationKind.ESCALATED, 5)
    cleared = entry(CommunicationKind.CLEARED, 6)
    for item in (applied, escalated, cleared):
        repository.add(item)
    sqlite_session.commit()

    assert repository.latest_pending("m@example.com", "P") is escalated

    escalated.mark_returned(NOW + timedelta(days=7))
    sqlite_session.commit()

    assert repository.latest_pending("m@example.com", "P") is applied
    assert repository.list_for_pair("m@example.com", "P") == [applied, escalated, cleared]


def test_execution_repository_saves_twice_and_orders_recent(sqlite_session: Session) -> None:
    repository = SqlAlchemyPipelineExecutionRepository(sqlite_session)
    older = PipelineExecution(
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=TriggerSource.CRON,
        started_at=NOW - timedelta(days=1),
    )
    newer = PipelineExecution(
        execution_type=ExecutionType.MANUAL,
        triggered_by=TriggerSource.CLI,
        started_at=NOW,
    )
    repository.add(older)
    repository.add(newer)
    sqlite_session.commit()

    newer.finish(ExecutionStatus.SUCCESS, now=NOW + timedelta(minutes=1))
    repository.add(newer)
    sqlite_session.commit()

    recent = repository.recent(5)
    assert [execution.id for execution in recent] == [newer.id, older.id]
    assert recent[0].status is ExecutionStatus.SUCCESS
    assert repository.recent(1)[0].id == newer.id


def test_execution_repository_lists_unfinished_runs(sqlite_session: Session) -> None:
    repository = SqlAlchemyPipelineExecutionRepository(sqlite_session)
    finished = PipelineExecution(
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=TriggerSource.CRON,
        started_at=NOW - timedelta(days=2),
    )
    finished.finish(ExecutionStatus.PARTIAL, now=NOW - timedelta(days=2))
    abandoned = PipelineExecution(
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=TriggerSource.CRON,
        started_at=NOW - timedelta(days=1),
    )
    repository.add(finished)
    repository.add(abandoned)
    sqlite_session.commit()

    running = repository.list_running()

    assert [execution.id for execution in running] == [abandoned.id]
    assert running[0].status is ExecutionStatus.RUNNING
