"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from engagesync.adapters.sqlalchemy.mappings import (
    communication_log_table,
    engagement_state_table,
    enrollment_table,
    pipeline_execution_table,
    product_table,
    reconciliation_result_table,
    reengagement_config_table,
)
from engagesync.domain.model import (
    CommunicationKind,
    CommunicationLogEntry,
    CommunicationOutcome,
    EngagementState,
    Enrollment,
    EnrollmentStatus,
    ExecutionStatus,
    Member,
    PairResult,
    PipelineExecution,
    Product,
    ReengagementConfig,
    normalize_email,
    normalize_product_code,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.orm import Session


class SqlAlchemyRepository[TEntity]:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: TEntity) -> None:
        self.session.add(entity)


class SqlAlchemyMemberRepository(SqlAlchemyRepository[Member]):
    def get(self, email: str) -> Member | None:
        return self.session.get(Member, normalize_email(email))


class SqlAlchemyProductRepository(SqlAlchemyRepository[Product]):
    def get(self, product_id: UUID) -> Product | None:
        return self.session.get(Product, product_id)

    def get_by_code(self, code: str) -> Product | None:
        stmt = select(Product).where(product_table.c.code == normalize_product_code(code))
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[Product]:
        stmt = select(Product).order_by(product_table.c.code)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyEnrollmentRepository(SqlAlchemyRepository[Enrollment]):
    def get(self, member_email: str, product_id: UUID) -> Enrollment | None:
        stmt = (
            select(Enrollment)
            .where(enrollment_table.c.member_email == normalize_email(member_email))
            .where(enrollment_table.c.product_id == product_id)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_active(self) -> list[Enrollment]:
        stmt = (
            select(Enrollment)
            .where(enrollment_table.c.status == EnrollmentStatus.ACTIVE)
            .order_by(enrollment_table.c.member_email)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyReengagementConfigRepository(SqlAlchemyRepository[ReengagementConfig]):
    def get(self, product_code: str) -> ReengagementConfig | None:
        return self.session.get(ReengagementConfig, normalize_product_code(product_code))

    def list_active(self) -> list[ReengagementConfig]:
        stmt = (
            select(ReengagementConfig)
            .where(reengagement_config_table.c.is_active.is_(True))
            .order_by(reengagement_config_table.c.product_code)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyEngagementStateRepository(SqlAlchemyRepository[EngagementState]):
    def get(self, member_email: str, product_code: str) -> EngagementState | None:
        stmt = (
            select(EngagementState)
            .where(engagement_state_table.c.member_email == normalize_email(member_email))
            .where(engagement_state_table.c.product_code == normalize_product_code(product_code))
        )
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyCommunicationLogRepository(SqlAlchemyRepository[CommunicationLogEntry]):
    def latest_pending(self, member_email: str, product_code: str) -> CommunicationLogEntry | None:
        stmt = (
            select(CommunicationLogEntry)
            .where(communication_log_table.c.member_email == normalize_email(member_email))
            .where(
                communication_log_table.c.product_code == normalize_product_code(product_code)
            )
            .where(
                communication_log_table.c.kind.in_(
                    (CommunicationKind.APPLIED, CommunicationKind.ESCALATED)
                )
            )
            .where(communication_log_table.c.outcome == CommunicationOutcome.PENDING)
            .order_by(communication_log_table.c.created_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_pair(self, member_email: str, product_code: str) -> list[CommunicationLogEntry]:
        stmt = (
            select(CommunicationLogEntry)
            .where(communication_log_table.c.member_email == normalize_email(member_email))
            .where(
                communication_log_table.c.product_code == normalize_product_code(product_code)
            )
            .order_by(communication_log_table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyPipelineExecutionRepository(SqlAlchemyRepository[PipelineExecution]):
    def add(self, entity: PipelineExecution) -> None:
        # executions are saved at start and again once finished
        self.session.merge(entity)

    def get(self, execution_id: UUID) -> PipelineExecution | None:
        return self.session.get(PipelineExecution, execution_id)

    def recent(self, limit: int) -> list[PipelineExecution]:
        stmt = (
            select(PipelineExecution)
            .order_by(pipeline_execution_table.c.started_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def list_running(self) -> list[PipelineExecution]:
        stmt = (
            select(PipelineExecution)
            .where(pipeline_execution_table.c.status == ExecutionStatus.RUNNING)
            .order_by(pipeline_execution_table.c.started_at)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyPairResultRepository(SqlAlchemyRepository[PairResult]):
    def list_for_execution(self, execution_id: UUID) -> list[PairResult]:
        stmt = (
            select(PairResult)
            .where(reconciliation_result_table.c.execution_id == execution_id)
            .order_by(
                reconciliation_result_table.c.product_code,
                reconciliation_result_table.c.member_email,
            )
        )
        return list(self.session.execute(stmt).scalars())
