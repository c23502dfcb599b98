from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from engagesync.adapters.http_resilience import ResilientClient
from engagesync.config import RateLimit, ResilienceConfig, RetryPolicy

BASE_URL = "https://remote.example"


def _client(handler: httpx.MockTransport) -> ResilientClient:
    config = ResilienceConfig(
        name="remote",
        base_url=BASE_URL,
        retry=RetryPolicy(total=0, status_forcelist=frozenset()),
        ratelimit=RateLimit(max_calls=100, per_seconds=1.0),
        default_headers={"Api-Token": "secret"},
    )
    return ResilientClient(config, transport=handler)


def test_client_counts_calls_per_method() -> None:
    seen: list[tuple[str, str | None]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.headers.get("Api-Token")))
        return httpx.Response(200, json={})

    async def exercise() -> ResilientClient:
        async with _client(httpx.MockTransport(handler)) as client:
            await client.get("/tags")
            await client.get("/tags", params={"search": "P - Level 1"})
            await client.post("/tags", json={"tag": {"tag": "P - Level 1"}})
            return client

    client = asyncio.run(exercise())

    assert client.calls == {"GET": 2, "POST": 1}
    assert client.total_calls == 3
    assert seen[0] == ("GET", "secret")


def test_client_warns_when_throttled(caplog: pytest.LogCaptureFixture) -> None:
    async def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={})

    async def exercise() -> httpx.Response:
        async with _client(httpx.MockTransport(handler)) as client:
            return await client.delete("/contactTags/7")

    with caplog.at_level(logging.WARNING, logger="engagesync.adapters.http_resilience"):
        response = asyncio.run(exercise())

    assert response.status_code == 429
    assert "remote throttled DELETE /contactTags/7" in caplog.text
