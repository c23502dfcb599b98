"""Learning platform enrollment sources."""

from __future__ import annotations

from .fetcher import HttpEnrollmentSource
from .schema import EnrollmentPage, EnrollmentPayload
from .translator import parse_enrollment

__all__ = ["EnrollmentPage", "EnrollmentPayload", "HttpEnrollmentSource", "parse_enrollment"]
