"""Load products and their reengagement levels from a TOML catalog file.

Example::

    [[products]]
    code = "PY101"
    name = "Python 101"
    platform = "HOTMART"
    legacy_prefixes = ["PY101_"]

    [[products.levels]]
    threshold_days = 7
    tag = "Inactive 7d"

    [[products.levels]]
    threshold_days = 14
    tag = "Inactive 14d"
    cooldown_days = 5

Levels are numbered 1..N in threshold order; tags without the product
prefix are qualified when the configuration is used.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from datetime import UTC, date, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from engagesync.domain.errors import ConfigurationError
from engagesync.domain.model import (
    DEFAULT_COOLDOWN_DAYS,
    Platform,
    Product,
    ReengagementConfig,
    ReengagementLevel,
    normalize_product_code,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from engagesync.domain.ports import EngagementUnitOfWork

log = getLogger(__name__)


class CatalogBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class LevelEntry(CatalogBaseModel):
    threshold_days: int = Field(gt=0)
    tag: str = Field(min_length=1)
    cooldown_days: int = Field(default=DEFAULT_COOLDOWN_DAYS, ge=0)


class ProductEntry(CatalogBaseModel):
    code: str = Field(min_length=1)
    name: str | None = None
    platform: Platform
    is_active: bool = True
    reengagement_active: bool = True
    legacy_prefixes: list[str] = Field(default_factory=list)
    owned_pattern: str | None = None
    retire_enrolled_before: datetime | None = None
    retire_after_inactive_days: int | None = Field(default=None, gt=0)
    levels: list[LevelEntry] = Field(default_factory=list)

    @field_validator("platform", mode="before")
    @classmethod
    def _upper_platform(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("retire_enrolled_before", mode="before")
    @classmethod
    def _date_to_datetime(cls, value: object) -> object:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day, tzinfo=UTC)
        return value

    @field_validator("retire_enrolled_before")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def build_levels(self) -> list[ReengagementLevel]:
        ordered = sorted(self.levels, key=lambda entry: entry.threshold_days)
        return [
            ReengagementLevel(
                level=index,
                inactivity_days_threshold=entry.threshold_days,
                tag_name=entry.tag.strip(),
                cooldown_days=entry.cooldown_days,
            )
            for index, entry in enumerate(ordered, start=1)
        ]


class CatalogFile(CatalogBaseModel):
    products: list[ProductEntry] = Field(default_factory=list)


@dataclass(slots=True)
class SeedResult:
    products_created: int = 0
    products_updated: int = 0
    configs_created: int = 0
    configs_updated: int = 0


def load_catalog(path: Path) -> CatalogFile:
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Could not read catalog {path}: {exc}") from exc
    try:
        return CatalogFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid catalog {path}: {exc}") from exc


def seed_catalog(
    catalog: CatalogFile,
    *,
    unit_of_work_factory: Callable[[], EngagementUnitOfWork],
) -> SeedResult:
    """Upsert every product and its reengagement configuration in one transaction.

    Configurations are validated before anything is written, so a bad entry
    leaves the store untouched.
    """

    staged: list[tuple[ProductEntry, ReengagementConfig]] = []
    for entry in catalog.products:
        config = ReengagementConfig(
            product_code=entry.code,
            levels=entry.build_levels(),
            legacy_prefixes=list(entry.legacy_prefixes),
            owned_pattern=entry.owned_pattern,
            retire_enrolled_before=entry.retire_enrolled_before,
            retire_after_inactive_days=entry.retire_after_inactive_days,
            is_active=entry.reengagement_active,
        )
        if config.is_active:
            config.validate()
        staged.append((entry, config))

    result = SeedResult()
    with unit_of_work_factory() as uow:
        repos = uow.repositories
        for entry, config in staged:
            code = normalize_product_code(entry.code)
            product = repos.products.get_by_code(code)
            if product is None:
                repos.products.add(
                    Product(
                        code=code,
                        name=entry.name,
                        platform=entry.platform,
                        is_active=entry.is_active,
                    )
                )
                result.products_created += 1
            else:
                product.name = entry.name or product.name
                product.platform = entry.platform
                product.is_active = entry.is_active
                result.products_updated += 1

            existing = repos.reengagement_configs.get(code)
            if existing is None:
                repos.reengagement_configs.add(config)
                result.configs_created += 1
            else:
                existing.levels = list(config.levels)
                existing.legacy_prefixes = list(config.legacy_prefixes)
                existing.owned_pattern = config.owned_pattern
                existing.retire_enrolled_before = config.retire_enrolled_before
                existing.retire_after_inactive_days = config.retire_after_inactive_days
                existing.is_active = config.is_active
                result.configs_updated += 1
        uow.commit()

    log.info(
        "Seeded catalog: products created=%s updated=%s, configs created=%s updated=%s",
        result.products_created,
        result.products_updated,
        result.configs_created,
        result.configs_updated,
    )
    return result
