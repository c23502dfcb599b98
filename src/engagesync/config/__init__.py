"""Application configuration helpers."""

from __future__ import annotations

from .activecampaign import ActiveCampaignConfig, get_activecampaign_config
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .pipeline import PipelineSettings, get_pipeline_settings
from .platforms import PlatformSourceConfig, get_platform_source_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ActiveCampaignConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PipelineSettings",
    "PlatformSourceConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_activecampaign_config",
    "get_database_config",
    "get_pipeline_settings",
    "get_platform_source_config",
    "get_storage_config",
    "require_env_vars",
]
