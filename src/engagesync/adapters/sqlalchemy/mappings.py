"""SQLAlchemy mapping metadata for the engagement domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import relationship

from engagesync.domain.model import (
    CommunicationKind,
    CommunicationLogEntry,
    CommunicationOutcome,
    EngagementLifecycle,
    EngagementState,
    Enrollment,
    EnrollmentStatus,
    ExecutionStatus,
    ExecutionType,
    Member,
    PairResult,
    PipelineExecution,
    Platform,
    Product,
    ReengagementConfig,
    ReengagementLevel,
    StageResult,
    TagHistoryEntry,
    TagRemovalReason,
    TriggerSource,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return _as_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class _JsonText[T](TypeDecorator[T]):
    """JSON stored as text, converted to and from domain values."""

    impl = Text
    cache_ok = True

    def to_payload(self, value: T) -> Any:
        return value

    def from_payload(self, payload: Any) -> T:
        return cast("T", payload)

    def empty(self) -> T:
        raise NotImplementedError

    def process_bind_param(self, value: T | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(self.to_payload(value), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> T:
        _ = dialect
        if value is None:
            return self.empty()
        return self.from_payload(json.loads(value))


class StringListType(_JsonText[list[str]]):
    cache_ok = True

    def to_payload(self, value: list[str]) -> Any:
        return list(value)

    def from_payload(self, payload: Any) -> list[str]:
        if not isinstance(payload, list):
            return []
        return [str(item) for item in cast("list[Any]", payload)]

    def empty(self) -> list[str]:
        return []


class PlatformActivityType(_JsonText[dict[Platform, datetime]]):
    cache_ok = True

    def to_payload(self, value: dict[Platform, datetime]) -> Any:
        return {str(platform): _as_utc(at).isoformat() for platform, at in value.items()}

    def from_payload(self, payload: Any) -> dict[Platform, datetime]:
        if not isinstance(payload, dict):
            return {}
        items = cast("dict[str, str]", payload)
        return {Platform(key): _as_utc(datetime.fromisoformat(at)) for key, at in items.items()}

    def empty(self) -> dict[Platform, datetime]:
        return {}


class LevelListType(_JsonText[list[ReengagementLevel]]):
    cache_ok = True

    def to_payload(self, value: list[ReengagementLevel]) -> Any:
        return [
            {
                "level": level.level,
                "inactivity_days_threshold": level.inactivity_days_threshold,
                "tag_name": level.tag_name,
                "cooldown_days": level.cooldown_days,
            }
            for level in value
        ]

    def from_payload(self, payload: Any) -> list[ReengagementLevel]:
        if not isinstance(payload, list):
            return []
        return [
            ReengagementLevel(
                level=int(item["level"]),
                inactivity_days_threshold=int(item["inactivity_days_threshold"]),
                tag_name=str(item["tag_name"]),
                cooldown_days=int(item["cooldown_days"]),
            )
            for item in cast("list[dict[str, Any]]", payload)
        ]

    def empty(self) -> list[ReengagementLevel]:
        return []


class StageResultListType(_JsonText[list[StageResult]]):
    cache_ok = True

    def to_payload(self, value: list[StageResult]) -> Any:
        return [stage.to_dict() for stage in value]

    def from_payload(self, payload: Any) -> list[StageResult]:
        if not isinstance(payload, list):
            return []
        return [StageResult.from_dict(item) for item in cast("list[dict[str, Any]]", payload)]

    def empty(self) -> list[StageResult]:
        return []


class CounterMapType(_JsonText[dict[str, int]]):
    cache_ok = True

    def to_payload(self, value: dict[str, int]) -> Any:
        return dict(value)

    def from_payload(self, payload: Any) -> dict[str, int]:
        if not isinstance(payload, dict):
            return {}
        return {str(key): int(count) for key, count in cast("dict[str, Any]", payload).items()}

    def empty(self) -> dict[str, int]:
        return {}


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Catalog ---------------------------------------------------------------------

member_table = Table(
    "member",
    mapper_registry.metadata,
    Column("email", String, primary_key=True),
    Column("name", String, nullable=True),
    Column("platform_activity", PlatformActivityType(), nullable=False, default=dict),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
)

product_table = Table(
    "product",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("code", String, nullable=False, unique=True),
    Column("name", String, nullable=True),
    Column("platform", Enum(Platform, native_enum=False), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

# No foreign keys on purpose: orphaned enrollments are reported, not rejected.
enrollment_table = Table(
    "enrollment",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("member_email", String, nullable=False),
    Column("product_id", UUIDColumnType, nullable=False),
    Column("platform", Enum(Platform, native_enum=False), nullable=False),
    Column("status", Enum(EnrollmentStatus, native_enum=False), nullable=False),
    Column("access_count", Integer, nullable=False, default=0),
    Column("last_activity", UTCDateTime(), nullable=True),
    Column("progress_percentage", Float, nullable=False, default=0.0),
    Column("enrolled_at", UTCDateTime(), nullable=True),
    Column("class_memberships", StringListType(), nullable=False, default=list),
    Column("days_since_last_activity", Integer, nullable=True),
    Column("days_since_enrollment", Integer, nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    UniqueConstraint("member_email", "product_id"),
    Index("ix_enrollment_status", "status"),
)

reengagement_config_table = Table(
    "reengagement_config",
    mapper_registry.metadata,
    Column("product_code", String, primary_key=True),
    Column("levels", LevelListType(), nullable=False, default=list),
    Column("legacy_prefixes", StringListType(), nullable=False, default=list),
    Column("owned_pattern", String, nullable=True),
    Column("retire_enrolled_before", UTCDateTime(), nullable=True),
    Column("retire_after_inactive_days", Integer, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
)

# Engagement state ------------------------------------------------------------

engagement_state_table = Table(
    "engagement_state",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("member_email", String, nullable=False),
    Column("product_code", String, nullable=False),
    Column("lifecycle", Enum(EngagementLifecycle, native_enum=False), nullable=False),
    Column("days_since_last_login", Integer, nullable=True),
    Column("current_level", Integer, nullable=True),
    Column("current_tag", String, nullable=True),
    Column("level_applied_at", UTCDateTime(), nullable=True),
    Column("cooldown_until", UTCDateTime(), nullable=True),
    Column("current_inactive_streak", Integer, nullable=False, default=0),
    Column("longest_inactive_streak", Integer, nullable=False, default=0),
    Column("first_inactive_at", UTCDateTime(), nullable=True),
    Column("tags_applied_count", Integer, nullable=False, default=0),
    Column("returns_count", Integer, nullable=False, default=0),
    Column("last_evaluated_at", UTCDateTime(), nullable=True),
    UniqueConstraint("member_email", "product_code"),
)

engagement_tag_history_table = Table(
    "engagement_tag_history",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "state_id",
        UUIDColumnType,
        ForeignKey("engagement_state.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("tag_name", String, nullable=False),
    Column("level", Integer, nullable=True),
    Column("applied_at", UTCDateTime(), nullable=False),
    Column("removed_at", UTCDateTime(), nullable=True),
    Column("result", Enum(TagRemovalReason, native_enum=False), nullable=True),
)

# Audit -----------------------------------------------------------------------

communication_log_table = Table(
    "communication_log",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("member_email", String, nullable=False),
    Column("product_code", String, nullable=False),
    Column("kind", Enum(CommunicationKind, native_enum=False), nullable=False),
    Column("level", Integer, nullable=True),
    Column("tags_applied", StringListType(), nullable=False, default=list),
    Column("tags_removed", StringListType(), nullable=False, default=list),
    Column("days_inactive", Integer, nullable=True),
    Column("last_activity", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("outcome", Enum(CommunicationOutcome, native_enum=False), nullable=False),
    Column("returned_at", UTCDateTime(), nullable=True),
    Index("ix_communication_log_pair", "member_email", "product_code", "created_at"),
)

pipeline_execution_table = Table(
    "pipeline_execution",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("execution_type", Enum(ExecutionType, native_enum=False), nullable=False),
    Column("triggered_by", Enum(TriggerSource, native_enum=False), nullable=False),
    Column("status", Enum(ExecutionStatus, native_enum=False), nullable=False),
    Column("started_at", UTCDateTime(), nullable=False),
    Column("finished_at", UTCDateTime(), nullable=True),
    Column("duration_seconds", Float, nullable=True),
    Column("stages", StageResultListType(), nullable=False, default=list),
    Column("summary", CounterMapType(), nullable=False, default=dict),
    Column("error_messages", StringListType(), nullable=False, default=list),
    Index("ix_pipeline_execution_started_at", "started_at"),
)

reconciliation_result_table = Table(
    "reconciliation_result",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "execution_id",
        UUIDColumnType,
        ForeignKey("pipeline_execution.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("member_email", String, nullable=False),
    Column("product_code", String, nullable=False),
    Column("tags_applied", StringListType(), nullable=False, default=list),
    Column("tags_removed", StringListType(), nullable=False, default=list),
    Column("communications_triggered", Integer, nullable=False, default=0),
    Column("success", Boolean, nullable=False),
    Column("error", Text, nullable=True),
    Index("ix_reconciliation_result_execution", "execution_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Member, member_table)
    mapper_registry.map_imperatively(Product, product_table)
    mapper_registry.map_imperatively(Enrollment, enrollment_table)
    mapper_registry.map_imperatively(ReengagementConfig, reengagement_config_table)
    mapper_registry.map_imperatively(TagHistoryEntry, engagement_tag_history_table)
    mapper_registry.map_imperatively(
        EngagementState,
        engagement_state_table,
        properties={
            "history": relationship(
                TagHistoryEntry,
                cascade="all, delete-orphan",
                order_by=engagement_tag_history_table.c.applied_at,
                lazy="selectin",
            ),
        },
    )
    mapper_registry.map_imperatively(CommunicationLogEntry, communication_log_table)
    mapper_registry.map_imperatively(PipelineExecution, pipeline_execution_table)
    mapper_registry.map_imperatively(PairResult, reconciliation_result_table)
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create every mapped table that does not exist yet."""

    start_mappers()
    mapper_registry.metadata.create_all(engine)
