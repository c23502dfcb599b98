"""Configuration error definitions."""

from __future__ import annotations

from engagesync.domain.errors import ConfigurationError

__all__ = ["ConfigurationError", "MissingConfigurationError"]


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""
