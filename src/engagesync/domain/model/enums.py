"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    HOTMART = "HOTMART"
    CURSEDUCA = "CURSEDUCA"
    DISCORD = "DISCORD"


class EnrollmentStatus(StrEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EngagementLifecycle(StrEnum):
    NO_SIGNAL = "NO_SIGNAL"
    ACTIVE = "ACTIVE"
    AT_RISK = "AT_RISK"
    REENGAGING = "REENGAGING"
    LOST = "LOST"


class TagRemovalReason(StrEnum):
    """Why an applied level tag stopped being the active one."""

    RETURNED = "RETURNED"
    ESCALATED = "ESCALATED"
    MANUAL_REMOVAL = "MANUAL_REMOVAL"


class CommunicationKind(StrEnum):
    APPLIED = "APPLIED"
    ESCALATED = "ESCALATED"
    RETURNED = "RETURNED"
    CLEARED = "CLEARED"


class CommunicationOutcome(StrEnum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"


class StageStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ExecutionStatus(StrEnum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ExecutionType(StrEnum):
    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class TriggerSource(StrEnum):
    CRON = "CRON"
    API = "API"
    CLI = "CLI"
