"""Decide which reengagement tag a pair should carry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from engagesync.domain.model import EngagementSnapshot, ReengagementConfig, ReengagementLevel


class DecisionReason(StrEnum):
    NO_SIGNAL = "no_signal"
    BELOW_THRESHOLD = "below_threshold"
    LEVEL_REACHED = "level_reached"
    COOLDOWN = "cooldown"


@dataclass(frozen=True, slots=True)
class TagDecision:
    """Desired tag for one pair. ``tag_name`` is fully qualified or ``None``."""

    tag_name: str | None
    level: ReengagementLevel | None
    reason: DecisionReason
    days_inactive: int | None = None

    @property
    def holds_current_tag(self) -> bool:
        return self.reason is DecisionReason.COOLDOWN


def select_level(
    days_inactive: int, levels: Iterable[ReengagementLevel]
) -> ReengagementLevel | None:
    """Return the highest level whose threshold ``days_inactive`` has reached."""

    selected: ReengagementLevel | None = None
    for level in sorted(levels, key=lambda item: item.inactivity_days_threshold):
        if days_inactive >= level.inactivity_days_threshold:
            selected = level
    return selected


def decide_tag(
    snapshot: EngagementSnapshot,
    config: ReengagementConfig,
    *,
    current_tag: str | None = None,
    cooldown_until: datetime | None = None,
    now: datetime | None = None,
) -> TagDecision:
    """Map an engagement snapshot onto the product's reengagement levels.

    A tag that is still inside its cooldown window is returned unchanged. A
    snapshot without any recorded activity never yields a tag.

    Raises ``ConfigurationError`` when the product's config is unusable.
    """

    config.validate()
    namespace = config.namespace

    if (
        current_tag is not None
        and cooldown_until is not None
        and now is not None
        and now < cooldown_until
    ):
        return TagDecision(
            tag_name=current_tag,
            level=config.level_for_tag(current_tag),
            reason=DecisionReason.COOLDOWN,
            days_inactive=snapshot.days_inactive,
        )

    if snapshot.days_inactive is None:
        return TagDecision(tag_name=None, level=None, reason=DecisionReason.NO_SIGNAL)

    level = select_level(snapshot.days_inactive, config.levels)
    if level is None:
        return TagDecision(
            tag_name=None,
            level=None,
            reason=DecisionReason.BELOW_THRESHOLD,
            days_inactive=snapshot.days_inactive,
        )
    return TagDecision(
        tag_name=namespace.qualify(level.tag_name),
        level=level,
        reason=DecisionReason.LEVEL_REACHED,
        days_inactive=snapshot.days_inactive,
    )
