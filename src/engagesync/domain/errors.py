"""Error taxonomy shared by the domain services and adapters."""

from __future__ import annotations


class EngageSyncError(Exception):
    """Base class for errors raised by engagesync."""


class ConfigurationError(EngageSyncError):
    """Raised when configuration is missing or invalid.

    Covers both process configuration (environment) and a product's
    reengagement configuration; the latter skips the product for the
    affected pair only.
    """

    def __init__(self, message: str, *, product_code: str | None = None) -> None:
        super().__init__(message)
        self.product_code = product_code


class RemoteUnavailableError(EngageSyncError):
    """Raised when a remote call failed, timed out, or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataIntegrityError(EngageSyncError):
    """Raised when an enrollment references a member or product that does not exist."""


class FatalPipelineError(EngageSyncError):
    """Raised when a failure must abort the remaining pipeline stages."""
