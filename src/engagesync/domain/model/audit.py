"""Durable records of what a run did: communications, pair results, executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from engagesync.domain.model.enums import (
    CommunicationKind,
    CommunicationOutcome,
    ExecutionStatus,
    ExecutionType,
    StageStatus,
    TriggerSource,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

type StatValue = int | float | str


@dataclass(eq=False, kw_only=True)
class CommunicationLogEntry:
    id: UUID = field(default_factory=uuid4)
    member_email: str
    product_code: str
    kind: CommunicationKind
    level: int | None = None
    tags_applied: list[str] = field(default_factory=list)
    tags_removed: list[str] = field(default_factory=list)
    days_inactive: int | None = None
    last_activity: datetime | None = None
    created_at: datetime
    outcome: CommunicationOutcome = CommunicationOutcome.PENDING
    returned_at: datetime | None = None

    def mark_returned(self, at: datetime) -> None:
        self.outcome = CommunicationOutcome.SUCCESS
        self.returned_at = at


@dataclass(eq=False, kw_only=True)
class PairResult:
    """Outcome of reconciling one (member, product) pair."""

    id: UUID = field(default_factory=uuid4)
    execution_id: UUID | None = None
    member_email: str
    product_code: str
    tags_applied: list[str] = field(default_factory=list)
    tags_removed: list[str] = field(default_factory=list)
    communications_triggered: int = 0
    success: bool = True
    error: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.tags_applied or self.tags_removed)

    def record_error(self, message: str) -> None:
        self.success = False
        self.error = message if self.error is None else f"{self.error}; {message}"


@dataclass(frozen=True, slots=True)
class StageResult:
    name: str
    status: StageStatus
    duration_seconds: float
    stats: Mapping[str, StatValue] = field(default_factory=dict)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is StageStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "stats": dict(self.stats),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> StageResult:
        return cls(
            name=str(payload["name"]),
            status=StageStatus(payload["status"]),
            duration_seconds=float(payload.get("duration_seconds", 0.0)),
            stats=dict(payload.get("stats") or {}),
            error=payload.get("error"),
        )


@dataclass(eq=False, kw_only=True)
class PipelineExecution:
    id: UUID = field(default_factory=uuid4)
    execution_type: ExecutionType
    triggered_by: TriggerSource
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    stages: list[StageResult] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    error_messages: list[str] = field(default_factory=list)

    def record_stage(self, result: StageResult) -> None:
        self.stages = [*self.stages, result]

    def add_errors(self, messages: list[str], *, cap: int) -> None:
        room = cap - len(self.error_messages)
        if room <= 0 or not messages:
            return
        self.error_messages = [*self.error_messages, *messages[:room]]

    def finish(self, status: ExecutionStatus, *, now: datetime) -> None:
        self.status = status
        self.finished_at = now
        self.duration_seconds = round((now - self.started_at).total_seconds(), 3)
