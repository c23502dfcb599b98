"""Ports for pulling enrollments out of the learning platforms."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from engagesync.domain.model import EnrollmentStatus

if TYPE_CHECKING:
    from datetime import datetime

    from engagesync.domain.model import Platform


@dataclass(frozen=True, slots=True)
class EnrollmentRecord:
    """Normalized enrollment row shared by every platform adapter."""

    member_email: str
    product_code: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    access_count: int = 0
    last_activity: datetime | None = None
    progress_percentage: float = 0.0
    enrolled_at: datetime | None = None
    class_memberships: tuple[str, ...] = ()
    member_name: str | None = None


@dataclass(slots=True)
class EnrollmentFetchResult:
    records: list[EnrollmentRecord] = field(default_factory=list)
    pages: int = 0
    rejected: int = 0


@runtime_checkable
class EnrollmentSource(Protocol):
    """Fetch every enrollment a platform currently reports."""

    @property
    def platform(self) -> Platform: ...

    def __call__(self) -> EnrollmentFetchResult: ...
