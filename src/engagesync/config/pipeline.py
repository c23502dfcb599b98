"""Defaults for the daily reconciliation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import env_float, env_int, env_list

DEFAULT_EXCLUDED_PRODUCTS: tuple[str, ...] = ("DISCORD_COMMUNITY", "DISCORD")
DEFAULT_REMOTE_CALL_DELAY_SECONDS = 0.1
DEFAULT_PROGRESS_STEP_PERCENT = 5
DEFAULT_LARGE_BATCH_THRESHOLD = 2000
DEFAULT_LARGE_BATCH_LOG_EVERY = 100
DEFAULT_MAX_ERROR_MESSAGES = 50


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    excluded_product_codes: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_EXCLUDED_PRODUCTS)
    )
    remote_call_delay_seconds: float = DEFAULT_REMOTE_CALL_DELAY_SECONDS
    progress_step_percent: int = DEFAULT_PROGRESS_STEP_PERCENT
    large_batch_threshold: int = DEFAULT_LARGE_BATCH_THRESHOLD
    large_batch_log_every: int = DEFAULT_LARGE_BATCH_LOG_EVERY
    max_error_messages: int = DEFAULT_MAX_ERROR_MESSAGES

    def is_excluded(self, product_code: str) -> bool:
        return product_code.upper() in self.excluded_product_codes


def get_pipeline_settings() -> PipelineSettings:
    excluded = env_list("ENGAGESYNC_EXCLUDED_PRODUCTS", DEFAULT_EXCLUDED_PRODUCTS)
    return PipelineSettings(
        excluded_product_codes=frozenset(code.upper() for code in excluded),
        remote_call_delay_seconds=env_float(
            "ENGAGESYNC_REMOTE_CALL_DELAY", DEFAULT_REMOTE_CALL_DELAY_SECONDS
        ),
        max_error_messages=env_int("ENGAGESYNC_MAX_ERROR_MESSAGES", DEFAULT_MAX_ERROR_MESSAGES),
    )
