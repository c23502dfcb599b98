from __future__ import annotations

import pytest

from engagesync.domain.errors import RemoteUnavailableError
from engagesync.domain.tag_cache import TagCache
from tests.helpers.crm import FakeTagStore


def test_prime_resolves_each_name_once_and_pauses_between_calls() -> None:
    store = FakeTagStore()
    sleeps: list[float] = []
    cache = TagCache(store, delay_seconds=0.1, sleep=sleeps.append)

    result = cache.prime(["P - Level 2", "P - Level 1", "P - Level 1", "  "])

    assert result.total == 2
    assert result.resolved == 2
    assert result.success
    assert [call for call in store.calls if call[0] == "create"] == [
        ("create", "P - Level 1"),
        ("create", "P - Level 2"),
    ]
    assert sleeps == [0.1]
    assert "P - Level 1" in cache
    assert len(cache) == 2


def test_prime_counts_names_already_cached() -> None:
    store = FakeTagStore()
    cache = TagCache(store, sleep=lambda _: None)
    cache.get_or_create("P - Level 1")

    result = cache.prime(["P - Level 1", "P - Level 2"])

    assert result.already_cached == 1
    assert result.resolved == 1
    assert result.as_stats()["total_tags"] == 2


def test_failed_names_are_remembered_without_new_remote_calls() -> None:
    store = FakeTagStore()
    store.fail_create.add("P - Level 1")
    cache = TagCache(store, sleep=lambda _: None)

    result = cache.prime(["P - Level 1", "P - Level 2"])

    assert result.failed == ["P - Level 1"]
    assert cache.failed == ("P - Level 1",)
    calls_before = len(store.calls)
    with pytest.raises(RemoteUnavailableError, match="earlier in this run"):
        cache.get_or_create("P - Level 1")
    assert len(store.calls) == calls_before


def test_get_or_create_uses_cached_id() -> None:
    store = FakeTagStore()
    cache = TagCache(store)

    first = cache.get_or_create("P - Level 1")
    second = cache.get_or_create("P - Level 1")

    assert first == second == cache.get("P - Level 1")
    assert store.calls == [("create", "P - Level 1")]
