"""Shared async HTTP client for the CRM and the learning platform exports.

Each remote service gets one ``ResilientClient``. Transient failures are
retried by the transport; the limiter keeps the service's per-second ceiling.
Calls are counted per method so a run can report its remote call volume.
"""

from __future__ import annotations

from collections import Counter
from logging import getLogger
from typing import TYPE_CHECKING, Any, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import HeaderTypes, QueryParamTypes, URLTypes

    from engagesync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

THROTTLED_STATUS = 429


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None


class ResilientClient:
    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.calls: Counter[str] = Counter()
        self._limiter = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit is not None
            else None
        )
        self._client = httpx.AsyncClient(**self._client_options(transport))

    def _client_options(self, transport: httpx.AsyncBaseTransport | None) -> dict[str, Any]:
        config = self.config
        options: dict[str, Any] = {
            "timeout": config.timeout_seconds,
            "transport": RetryTransport(transport=transport, retry=config.retry.build()),
        }
        if config.base_url is not None:
            options["base_url"] = config.base_url
        if config.default_headers:
            options["headers"] = dict(config.default_headers)
        return options

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self.calls:
            log.debug(
                "%s client closing after %s calls: %s",
                self.config.name,
                self.total_calls,
                dict(self.calls),
            )
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        self.calls[method] += 1
        if self._limiter is None:
            response = await self._client.request(method, url, **kwargs)
        else:
            async with self._limiter:
                response = await self._client.request(method, url, **kwargs)
        if response.status_code == THROTTLED_STATUS:
            log.warning(
                "%s throttled %s %s after retries", self.config.name, method, response.url.path
            )
        return response

    async def get(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def delete(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)
