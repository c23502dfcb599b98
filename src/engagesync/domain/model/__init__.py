"""Domain model package."""

from __future__ import annotations

from .audit import CommunicationLogEntry, PairResult, PipelineExecution, StageResult, StatValue
from .catalog import (
    EngagementSnapshot,
    Enrollment,
    Member,
    Product,
    normalize_email,
    normalize_product_code,
    whole_days_between,
)
from .enums import (
    CommunicationKind,
    CommunicationOutcome,
    EngagementLifecycle,
    EnrollmentStatus,
    ExecutionStatus,
    ExecutionType,
    Platform,
    StageStatus,
    TagRemovalReason,
    TriggerSource,
)
from .reengagement import (
    DEFAULT_COOLDOWN_DAYS,
    OWNED_TAG_PATTERN,
    ReengagementConfig,
    ReengagementLevel,
    TagNamespace,
)
from .state import AT_RISK_WINDOW_DAYS, EngagementState, TagHistoryEntry

__all__ = [
    "AT_RISK_WINDOW_DAYS",
    "DEFAULT_COOLDOWN_DAYS",
    "OWNED_TAG_PATTERN",
    "CommunicationKind",
    "CommunicationLogEntry",
    "CommunicationOutcome",
    "EngagementLifecycle",
    "EngagementSnapshot",
    "EngagementState",
    "Enrollment",
    "EnrollmentStatus",
    "ExecutionStatus",
    "ExecutionType",
    "Member",
    "PairResult",
    "PipelineExecution",
    "Platform",
    "Product",
    "ReengagementConfig",
    "ReengagementLevel",
    "StageResult",
    "StageStatus",
    "StatValue",
    "TagHistoryEntry",
    "TagNamespace",
    "TagRemovalReason",
    "TriggerSource",
    "normalize_email",
    "normalize_product_code",
    "whole_days_between",
]
