"""Members, products and the enrollments linking them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from engagesync.domain.model.enums import EnrollmentStatus, Platform

_DAY = timedelta(days=1)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_product_code(code: str) -> str:
    return code.strip().upper()


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``later``, floored at zero."""

    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=UTC)
    if later.tzinfo is None:
        later = later.replace(tzinfo=UTC)
    return max(0, (later - earlier) // _DAY)


@dataclass(eq=False, kw_only=True)
class Member:
    email: str
    name: str | None = None
    platform_activity: dict[Platform, datetime] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)

    def last_activity_on(self, platform: Platform) -> datetime | None:
        return self.platform_activity.get(platform)

    def record_activity(self, platform: Platform, at: datetime) -> bool:
        """Keep the most recent activity per platform; return whether it moved."""

        current = self.platform_activity.get(platform)
        if current is not None and current >= at:
            return False
        # reassign so the mapped JSON column sees the change
        self.platform_activity = {**self.platform_activity, platform: at}
        return True


@dataclass(eq=False, kw_only=True)
class Product:
    id: UUID = field(default_factory=uuid4)
    code: str
    name: str | None = None
    platform: Platform
    is_active: bool = True

    def __post_init__(self) -> None:
        self.code = normalize_product_code(self.code)


@dataclass(frozen=True, slots=True)
class EngagementSnapshot:
    """Point-in-time engagement signal for one enrollment.

    ``days_inactive`` is ``None`` when no activity was ever recorded, which is
    distinct from a long inactivity.
    """

    days_inactive: int | None
    access_count: int = 0
    progress_percentage: float = 0.0
    enrolled_at: datetime | None = None
    last_activity: datetime | None = None

    @property
    def has_signal(self) -> bool:
        return self.days_inactive is not None


@dataclass(eq=False, kw_only=True)
class Enrollment:
    id: UUID = field(default_factory=uuid4)
    member_email: str
    product_id: UUID
    platform: Platform
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    access_count: int = 0
    last_activity: datetime | None = None
    progress_percentage: float = 0.0
    enrolled_at: datetime | None = None
    class_memberships: list[str] = field(default_factory=list)
    days_since_last_activity: int | None = None
    days_since_enrollment: int | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.member_email = normalize_email(self.member_email)

    @property
    def is_active(self) -> bool:
        return self.status is EnrollmentStatus.ACTIVE

    def snapshot(self, now: datetime) -> EngagementSnapshot:
        days_inactive = (
            whole_days_between(self.last_activity, now) if self.last_activity is not None else None
        )
        return EngagementSnapshot(
            days_inactive=days_inactive,
            access_count=self.access_count,
            progress_percentage=self.progress_percentage,
            enrolled_at=self.enrolled_at,
            last_activity=self.last_activity,
        )
