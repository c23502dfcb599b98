"""Translate platform payloads into normalized enrollment records."""

from __future__ import annotations

from datetime import UTC, datetime

from engagesync.domain.ports import EnrollmentRecord

from .schema import EnrollmentPayload


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_enrollment(payload: object) -> EnrollmentRecord:
    """Validate one raw item and normalise it; raises ``ValidationError`` on bad input."""

    model = EnrollmentPayload.model_validate(payload)
    return EnrollmentRecord(
        member_email=model.email.strip().lower(),
        product_code=model.product_code.strip().upper(),
        status=model.status,
        access_count=max(0, model.access_count),
        last_activity=_utc(model.last_activity),
        progress_percentage=model.progress_percentage,
        enrolled_at=_utc(model.enrolled_at),
        class_memberships=tuple(sorted(set(model.classes))),
        member_name=model.name,
    )
