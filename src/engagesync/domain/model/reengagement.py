"""Per-product reengagement levels and the tag namespace they live in."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from engagesync.domain.errors import ConfigurationError
from engagesync.domain.model.catalog import normalize_product_code

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from engagesync.domain.model.catalog import EngagementSnapshot

OWNED_TAG_PATTERN: Final[str] = r"^[A-Z0-9_]+ - .+$"
CANONICAL_SEPARATOR: Final[str] = " - "
DEFAULT_COOLDOWN_DAYS: Final[int] = 3


@dataclass(frozen=True, slots=True)
class ReengagementLevel:
    level: int
    inactivity_days_threshold: int
    tag_name: str
    cooldown_days: int = DEFAULT_COOLDOWN_DAYS


@dataclass(frozen=True, slots=True)
class TagNamespace:
    """Naming convention for the tags one product owns in the CRM.

    Desired tags are always generated with ``canonical_prefix``. Legacy prefixes
    only widen which observed tags are considered part of the namespace.
    """

    product_code: str
    legacy_prefixes: tuple[str, ...] = ()
    owned_pattern: str = OWNED_TAG_PATTERN

    @property
    def canonical_prefix(self) -> str:
        return f"{self.product_code}{CANONICAL_SEPARATOR}"

    def qualify(self, tag_name: str) -> str:
        name = tag_name.strip()
        if name.upper().startswith(self.canonical_prefix.upper()):
            return name
        return f"{self.canonical_prefix}{name}"

    def contains(self, tag: str) -> bool:
        candidate = tag.strip().upper()
        return any(
            candidate.startswith(prefix.upper())
            for prefix in (self.canonical_prefix, *self.legacy_prefixes)
        )

    def owns(self, tag: str) -> bool:
        return self.contains(tag) and re.fullmatch(self.owned_pattern, tag.strip()) is not None

    def filter(self, tags: Iterable[str]) -> list[str]:
        return sorted({tag for tag in tags if self.contains(tag)})


@dataclass(eq=False, kw_only=True)
class ReengagementConfig:
    product_code: str
    levels: list[ReengagementLevel] = field(default_factory=list)
    legacy_prefixes: list[str] = field(default_factory=list)
    owned_pattern: str | None = None
    retire_enrolled_before: datetime | None = None
    retire_after_inactive_days: int | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        self.product_code = normalize_product_code(self.product_code)

    @property
    def namespace(self) -> TagNamespace:
        return TagNamespace(
            product_code=self.product_code,
            legacy_prefixes=tuple(self.legacy_prefixes),
            owned_pattern=self.owned_pattern or OWNED_TAG_PATTERN,
        )

    def ordered_levels(self) -> tuple[ReengagementLevel, ...]:
        return tuple(sorted(self.levels, key=lambda item: item.inactivity_days_threshold))

    def qualified_tag_names(self) -> list[str]:
        namespace = self.namespace
        return [namespace.qualify(level.tag_name) for level in self.ordered_levels()]

    def level_for_tag(self, tag: str) -> ReengagementLevel | None:
        namespace = self.namespace
        for level in self.levels:
            if namespace.qualify(level.tag_name) == tag:
                return level
        return None

    @property
    def top_level(self) -> int | None:
        return max((level.level for level in self.levels), default=None)

    @property
    def first_threshold(self) -> int | None:
        return min((level.inactivity_days_threshold for level in self.levels), default=None)

    def retires(self, snapshot: EngagementSnapshot) -> bool:
        """Whether the pair falls outside automation under the retirement policy."""

        if (
            self.retire_enrolled_before is not None
            and snapshot.enrolled_at is not None
            and snapshot.enrolled_at < self.retire_enrolled_before
        ):
            return True
        return (
            self.retire_after_inactive_days is not None
            and snapshot.days_inactive is not None
            and snapshot.days_inactive > self.retire_after_inactive_days
        )

    def validate(self) -> None:
        code = self.product_code
        if not self.is_active:
            raise ConfigurationError(
                f"Reengagement config for {code} is disabled", product_code=code
            )
        if not self.levels:
            raise ConfigurationError(
                f"No reengagement levels configured for {code}", product_code=code
            )
        try:
            re.compile(self.owned_pattern or OWNED_TAG_PATTERN)
        except re.error as exc:
            raise ConfigurationError(
                f"Invalid owned tag pattern for {code}: {exc}", product_code=code
            ) from exc

        numbers = [level.level for level in self.levels]
        if len(set(numbers)) != len(numbers):
            raise ConfigurationError(f"Duplicate level numbers for {code}", product_code=code)

        previous: ReengagementLevel | None = None
        namespace = self.namespace
        for level in sorted(self.levels, key=lambda item: item.level):
            if not level.tag_name.strip():
                raise ConfigurationError(
                    f"Level {level.level} of {code} has no tag name", product_code=code
                )
            if level.inactivity_days_threshold <= 0 or level.cooldown_days < 0:
                raise ConfigurationError(
                    f"Level {level.level} of {code} has a non-positive threshold or "
                    "negative cooldown",
                    product_code=code,
                )
            if (
                previous is not None
                and level.inactivity_days_threshold <= previous.inactivity_days_threshold
            ):
                raise ConfigurationError(
                    f"Thresholds of {code} must increase with the level number",
                    product_code=code,
                )
            qualified = namespace.qualify(level.tag_name)
            if not namespace.owns(qualified):
                raise ConfigurationError(
                    f"Tag {qualified!r} of {code} does not follow the owned tag convention",
                    product_code=code,
                )
            previous = level
