"""ActiveCampaign configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import require_env_vars
from .http_resilience import ResilienceConfig

ACTIVECAMPAIGN_TIMEOUT_SECONDS = 15.0
ACTIVECAMPAIGN_CALLS_PER_SECOND = 5


@dataclass(frozen=True, slots=True)
class ActiveCampaignConfig:
    """Holds ActiveCampaign API configuration values."""

    api_url: str
    api_key: str
    resilience: ResilienceConfig


def get_activecampaign_config(
    *, resilience: ResilienceConfig | None = None
) -> ActiveCampaignConfig:
    values = require_env_vars(("ACTIVECAMPAIGN_API_URL", "ACTIVECAMPAIGN_API_KEY"))
    api_url = values["ACTIVECAMPAIGN_API_URL"].rstrip("/")
    api_key = values["ACTIVECAMPAIGN_API_KEY"]
    return ActiveCampaignConfig(
        api_url=api_url,
        api_key=api_key,
        resilience=resilience
        or ResilienceConfig.for_service(
            "activecampaign",
            base_url=api_url,
            headers={"Api-Token": api_key},
            calls_per_second=ACTIVECAMPAIGN_CALLS_PER_SECOND,
            timeout_seconds=ACTIVECAMPAIGN_TIMEOUT_SECONDS,
        ),
    )
