"""Run-scoped cache of remote tag ids, primed before reconciliation."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.errors import RemoteUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from engagesync.domain.ports import TagStore

log = getLogger(__name__)


@dataclass(slots=True)
class PreCreationResult:
    total: int = 0
    resolved: int = 0
    already_cached: int = 0
    failed: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed

    def as_stats(self) -> dict[str, int | float]:
        return {
            "total_tags": self.total,
            "resolved": self.resolved,
            "already_cached": self.already_cached,
            "failed": len(self.failed),
            "duration_seconds": round(self.duration_seconds, 3),
        }


class TagCache:
    """Map of tag name to remote tag id for one pipeline execution.

    Names that could not be resolved are remembered as failed; later lookups
    for them raise ``RemoteUnavailableError`` without another remote call.
    """

    def __init__(
        self,
        store: TagStore,
        *,
        delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._ids: dict[str, str] = {}
        self._failed: dict[str, str] = {}

    def __contains__(self, tag_name: object) -> bool:
        return tag_name in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def failed(self) -> tuple[str, ...]:
        return tuple(self._failed)

    def get(self, tag_name: str) -> str | None:
        return self._ids.get(tag_name)

    def get_or_create(self, tag_name: str) -> str:
        cached = self._ids.get(tag_name)
        if cached is not None:
            return cached
        if tag_name in self._failed:
            raise RemoteUnavailableError(
                f"Tag {tag_name!r} could not be created earlier in this run: "
                f"{self._failed[tag_name]}"
            )
        try:
            tag_id = self._store.get_or_create_tag(tag_name)
        except RemoteUnavailableError as exc:
            self._failed[tag_name] = str(exc)
            raise
        if not tag_id:
            self._failed[tag_name] = "remote returned no id"
            raise RemoteUnavailableError(f"Remote returned no id for tag {tag_name!r}")
        self._ids[tag_name] = tag_id
        return tag_id

    def prime(self, tag_names: Iterable[str]) -> PreCreationResult:
        """Resolve every name up front, pausing between remote calls."""

        started = time.perf_counter()
        names = sorted({name.strip() for name in tag_names if name.strip()})
        result = PreCreationResult(total=len(names))
        log.info(f"Pre-creating {len(names)} tags")

        remote_calls = 0
        for name in names:
            if name in self._ids:
                result.already_cached += 1
                continue
            if remote_calls and self._delay_seconds > 0:
                self._sleep(self._delay_seconds)
            remote_calls += 1
            try:
                self.get_or_create(name)
            except RemoteUnavailableError as exc:
                log.warning("Could not pre-create tag %r: %s", name, exc)
                result.failed.append(name)
                continue
            result.resolved += 1

        result.duration_seconds = time.perf_counter() - started
        log.info(
            "Tag pre-creation finished: total=%s, resolved=%s, cached=%s, failed=%s",
            result.total,
            result.resolved,
            result.already_cached,
            len(result.failed),
        )
        return result
