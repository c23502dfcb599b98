"""Paginated enrollment source shared by the learning platforms."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from engagesync.adapters.http_resilience import ResilientClient
from engagesync.domain.errors import RemoteUnavailableError
from engagesync.domain.ports import EnrollmentFetchResult, EnrollmentSource

from .schema import EnrollmentPage
from .translator import parse_enrollment

if TYPE_CHECKING:
    from collections.abc import Callable

    from engagesync.config.http_resilience import ResilienceConfig
    from engagesync.config.platforms import PlatformSourceConfig
    from engagesync.domain.model import Platform

log = getLogger(__name__)

ENROLLMENTS_PATH = "/enrollments"


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class HttpEnrollmentSource:
    """Walk ``GET /enrollments?page=N&per_page=M`` until the last page.

    Items that fail validation are counted as rejected and skipped; any
    transport or page-level failure aborts the fetch with
    ``RemoteUnavailableError``.
    """

    config: PlatformSourceConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    max_pages: int | None = None

    @property
    def platform(self) -> Platform:
        return self.config.platform

    def __call__(self) -> EnrollmentFetchResult:
        try:
            return asyncio.run(self._fetch_all())
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteUnavailableError(
                f"{self.platform} enrollment export failed: HTTP {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(
                f"{self.platform} enrollment export failed: {exc}"
            ) from exc
        except (ValidationError, json.JSONDecodeError) as exc:
            raise RemoteUnavailableError(
                f"{self.platform} returned an unexpected enrollment page"
            ) from exc

    async def _fetch_all(self) -> EnrollmentFetchResult:
        result = EnrollmentFetchResult()
        page = 1
        async with self.client_factory(self.config.resilience) as client:
            while True:
                if page > 1 and self.config.page_delay_seconds > 0:
                    await asyncio.sleep(self.config.page_delay_seconds)
                response = await client.get(
                    ENROLLMENTS_PATH,
                    params={"page": page, "per_page": self.config.page_size},
                )
                response.raise_for_status()
                envelope = EnrollmentPage.model_validate(response.json())
                result.pages += 1

                for item in envelope.items:
                    try:
                        result.records.append(parse_enrollment(item))
                    except ValidationError as exc:
                        result.rejected += 1
                        log.warning(
                            "Rejected %s enrollment item: %s",
                            self.platform,
                            exc.errors(include_url=False),
                        )

                if page >= envelope.total_pages:
                    break
                if self.max_pages is not None and page >= self.max_pages:
                    log.info("Stopping %s fetch after %s pages", self.platform, page)
                    break
                page += 1

        log.info(
            f"Fetched {len(result.records)} {self.platform} enrollments from {result.pages} "
            f"pages ({result.rejected} rejected)"
        )
        return result


if TYPE_CHECKING:
    from engagesync.config.platforms import get_platform_source_config
    from engagesync.domain.model import Platform as _Platform

    _source_check: EnrollmentSource = HttpEnrollmentSource(
        get_platform_source_config(_Platform.HOTMART)
    )
