"""Pydantic models for the paginated enrollment export of a learning platform."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from engagesync.domain.model import EnrollmentStatus

_ACTIVE_STATUSES = frozenset({"ACTIVE", "APPROVED", "COMPLETE", "ENROLLED"})


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class PlatformBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EnrollmentPayload(PlatformBaseModel):
    email: str = Field(validation_alias=AliasChoices("email", "member_email"))
    name: str | None = None
    product_code: str = Field(validation_alias=AliasChoices("product_code", "productCode"))
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    access_count: int = Field(
        default=0, validation_alias=AliasChoices("access_count", "accessCount")
    )
    last_activity: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("last_activity", "lastActivity", "last_access_at"),
    )
    progress_percentage: float = Field(
        default=0.0, validation_alias=AliasChoices("progress_percentage", "progress")
    )
    enrolled_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("enrolled_at", "enrolledAt", "purchase_date")
    )
    classes: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("classes", "class_memberships")
    )

    _normalize_blank = field_validator("name", "last_activity", "enrolled_at", mode="before")(
        _blank_to_none
    )

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if value is None:
            return EnrollmentStatus.ACTIVE
        if isinstance(value, str):
            return (
                EnrollmentStatus.ACTIVE
                if value.strip().upper() in _ACTIVE_STATUSES
                else EnrollmentStatus.INACTIVE
            )
        return value

    @field_validator("classes", mode="before")
    @classmethod
    def _stringify_classes(cls, value: object) -> object:
        if isinstance(value, list):
            return [str(item) for item in value]  # pyright: ignore[reportUnknownVariableType]
        return value

    @field_validator("progress_percentage")
    @classmethod
    def _clamp_progress(cls, value: float) -> float:
        return min(100.0, max(0.0, value))


class EnrollmentPage(PlatformBaseModel):
    items: list[dict[str, object]] = Field(default_factory=list)
    page: int = 1
    total_pages: int = Field(default=1, validation_alias=AliasChoices("total_pages", "totalPages"))
