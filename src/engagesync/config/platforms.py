"""Learning platform source configuration."""

from __future__ import annotations

from dataclasses import dataclass

from engagesync.domain.model import Platform

from .env import env_float, env_int, require_env_vars
from .http_resilience import ResilienceConfig

DEFAULT_PAGE_SIZE = 100
DEFAULT_PAGE_DELAY_SECONDS = 0.2
PLATFORM_TIMEOUT_SECONDS = 30.0
PLATFORM_CALLS_PER_SECOND = 2


@dataclass(frozen=True, slots=True)
class PlatformSourceConfig:
    platform: Platform
    api_url: str
    api_token: str
    page_size: int
    page_delay_seconds: float
    resilience: ResilienceConfig


def get_platform_source_config(
    platform: Platform,
    *,
    resilience: ResilienceConfig | None = None,
) -> PlatformSourceConfig:
    """Read ``<PLATFORM>_API_URL`` / ``<PLATFORM>_API_TOKEN`` and optional paging knobs."""

    prefix = platform.value
    url_var = f"{prefix}_API_URL"
    token_var = f"{prefix}_API_TOKEN"
    values = require_env_vars((url_var, token_var))
    api_url = values[url_var].rstrip("/")
    api_token = values[token_var]
    return PlatformSourceConfig(
        platform=platform,
        api_url=api_url,
        api_token=api_token,
        page_size=env_int(f"{prefix}_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        page_delay_seconds=env_float(f"{prefix}_PAGE_DELAY_SECONDS", DEFAULT_PAGE_DELAY_SECONDS),
        resilience=resilience
        or ResilienceConfig.for_service(
            prefix.lower(),
            base_url=api_url,
            headers={"Authorization": f"Bearer {api_token}"},
            calls_per_second=PLATFORM_CALLS_PER_SECOND,
            timeout_seconds=PLATFORM_TIMEOUT_SECONDS,
        ),
    )
