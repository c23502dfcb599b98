"""Per member and product engagement bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Final
from uuid import UUID, uuid4

from engagesync.domain.model.catalog import normalize_email, normalize_product_code
from engagesync.domain.model.enums import EngagementLifecycle, TagRemovalReason

AT_RISK_WINDOW_DAYS: Final[int] = 5


@dataclass(eq=False, kw_only=True)
class TagHistoryEntry:
    id: UUID = field(default_factory=uuid4)
    tag_name: str
    level: int | None
    applied_at: datetime
    removed_at: datetime | None = None
    result: TagRemovalReason | None = None

    @property
    def is_open(self) -> bool:
        return self.removed_at is None


@dataclass(eq=False, kw_only=True)
class EngagementState:
    """Lifecycle of one (member, product) pair as seen by reconciliation.

    Created on the first reconciliation of a pair and never deleted. Only the
    reconciler mutates it, after the matching remote change succeeded.
    """

    id: UUID = field(default_factory=uuid4)
    member_email: str
    product_code: str
    lifecycle: EngagementLifecycle = EngagementLifecycle.NO_SIGNAL
    days_since_last_login: int | None = None
    current_level: int | None = None
    current_tag: str | None = None
    level_applied_at: datetime | None = None
    cooldown_until: datetime | None = None
    current_inactive_streak: int = 0
    longest_inactive_streak: int = 0
    first_inactive_at: datetime | None = None
    tags_applied_count: int = 0
    returns_count: int = 0
    last_evaluated_at: datetime | None = None
    history: list[TagHistoryEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.member_email = normalize_email(self.member_email)
        self.product_code = normalize_product_code(self.product_code)

    def in_cooldown(self, now: datetime) -> bool:
        return (
            self.current_tag is not None
            and self.cooldown_until is not None
            and now < self.cooldown_until
        )

    def open_entry(self) -> TagHistoryEntry | None:
        for entry in reversed(self.history):
            if entry.is_open:
                return entry
        return None

    def observe(
        self,
        days_inactive: int | None,
        *,
        now: datetime,
        first_threshold: int | None = None,
        top_level: int | None = None,
    ) -> None:
        """Refresh inactivity counters and derive the lifecycle state."""

        self.days_since_last_login = days_inactive
        self.last_evaluated_at = now

        if days_inactive:
            if self.first_inactive_at is None:
                self.first_inactive_at = now - timedelta(days=days_inactive)
            self.current_inactive_streak = days_inactive
            self.longest_inactive_streak = max(self.longest_inactive_streak, days_inactive)
        else:
            self.current_inactive_streak = 0
            self.first_inactive_at = None

        self.lifecycle = self._derive_lifecycle(days_inactive, now, first_threshold, top_level)

    def _derive_lifecycle(
        self,
        days_inactive: int | None,
        now: datetime,
        first_threshold: int | None,
        top_level: int | None,
    ) -> EngagementLifecycle:
        if self.current_tag is not None:
            if (
                top_level is not None
                and self.current_level == top_level
                and not self.in_cooldown(now)
            ):
                return EngagementLifecycle.LOST
            return EngagementLifecycle.REENGAGING
        if days_inactive is None:
            return EngagementLifecycle.NO_SIGNAL
        if (
            first_threshold is not None
            and days_inactive > 0
            and days_inactive >= first_threshold - AT_RISK_WINDOW_DAYS
        ):
            return EngagementLifecycle.AT_RISK
        return EngagementLifecycle.ACTIVE

    def apply_tag(self, tag: str, *, level: int | None, cooldown_days: int, now: datetime) -> None:
        if self.current_tag is not None:
            self._close_open_entry(now, TagRemovalReason.ESCALATED)
        self.current_tag = tag
        self.current_level = level
        self.level_applied_at = now
        self.cooldown_until = now + timedelta(days=cooldown_days)
        self.tags_applied_count += 1
        self.lifecycle = EngagementLifecycle.REENGAGING
        self.history.append(TagHistoryEntry(tag_name=tag, level=level, applied_at=now))

    def mark_returned(self, now: datetime) -> None:
        self._close_open_entry(now, TagRemovalReason.RETURNED)
        self._clear_current()
        self.returns_count += 1
        self.current_inactive_streak = 0
        self.first_inactive_at = None
        self.lifecycle = EngagementLifecycle.ACTIVE

    def clear_tag(self, now: datetime, reason: TagRemovalReason) -> None:
        self._close_open_entry(now, reason)
        self._clear_current()

    def _clear_current(self) -> None:
        self.current_tag = None
        self.current_level = None
        self.level_applied_at = None
        self.cooldown_until = None

    def _close_open_entry(self, now: datetime, reason: TagRemovalReason) -> None:
        entry = self.open_entry()
        if entry is not None:
            entry.removed_at = now
            entry.result = reason
