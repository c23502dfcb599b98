"""Ports for persisting domain aggregates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from engagesync.domain.model import (
    CommunicationLogEntry,
    EngagementState,
    Enrollment,
    Member,
    PairResult,
    PipelineExecution,
    Product,
    ReengagementConfig,
)

if TYPE_CHECKING:
    from uuid import UUID


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class MemberRepository(Repository[Member], Protocol):
    def get(self, email: str) -> Member | None: ...


@runtime_checkable
class ProductRepository(Repository[Product], Protocol):
    def get(self, product_id: UUID) -> Product | None: ...

    def get_by_code(self, code: str) -> Product | None: ...

    def list_all(self) -> list[Product]: ...


@runtime_checkable
class EnrollmentRepository(Repository[Enrollment], Protocol):
    def get(self, member_email: str, product_id: UUID) -> Enrollment | None: ...

    def list_active(self) -> list[Enrollment]: ...


@runtime_checkable
class ReengagementConfigRepository(Repository[ReengagementConfig], Protocol):
    def get(self, product_code: str) -> ReengagementConfig | None: ...

    def list_active(self) -> list[ReengagementConfig]: ...


@runtime_checkable
class EngagementStateRepository(Repository[EngagementState], Protocol):
    def get(self, member_email: str, product_code: str) -> EngagementState | None: ...


@runtime_checkable
class CommunicationLogRepository(Repository[CommunicationLogEntry], Protocol):
    def latest_pending(self, member_email: str, product_code: str) -> CommunicationLogEntry | None:
        """Most recent applied/escalated entry still waiting for the member to return."""
        ...

    def list_for_pair(
        self, member_email: str, product_code: str
    ) -> list[CommunicationLogEntry]: ...


@runtime_checkable
class PipelineExecutionRepository(Repository[PipelineExecution], Protocol):
    def get(self, execution_id: UUID) -> PipelineExecution | None: ...

    def recent(self, limit: int) -> list[PipelineExecution]: ...

    def list_running(self) -> list[PipelineExecution]: ...


@runtime_checkable
class PairResultRepository(Repository[PairResult], Protocol):
    def list_for_execution(self, execution_id: UUID) -> list[PairResult]: ...
