"""JSON Lines copy of the latest engagement state per pair."""

from __future__ import annotations

import json
from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING

from engagesync.domain.ports import EngagementStateMirror

if TYPE_CHECKING:
    from pathlib import Path

    from engagesync.domain.model import EngagementState

log = getLogger(__name__)

_MIRRORED_FIELDS = (
    "member_email",
    "product_code",
    "lifecycle",
    "days_since_last_login",
    "current_level",
    "current_tag",
    "level_applied_at",
    "cooldown_until",
    "current_inactive_streak",
    "longest_inactive_streak",
    "tags_applied_count",
    "returns_count",
    "last_evaluated_at",
)


def _jsonable(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def state_to_row(state: EngagementState) -> dict[str, object]:
    return {name: _jsonable(getattr(state, name)) for name in _MIRRORED_FIELDS}


class JsonlStateMirror:
    """Latest state of every (member, product) pair, one JSON object per line.

    ``publish`` only buffers; ``flush`` merges the buffer over the rows already
    on disk and swaps the file in one rename, so each pair keeps a single row.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._pending: dict[tuple[str, str], dict[str, object]] = {}

    def publish(self, state: EngagementState) -> None:
        self._pending[(state.member_email, state.product_code)] = state_to_row(state)

    def flush(self) -> None:
        if not self._pending:
            return
        rows = self._read_rows()
        rows.update(self._pending)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.path.with_name(f"{self.path.name}.tmp")
        with partial.open("w", encoding="utf-8") as handle:
            for key in sorted(rows):
                handle.write(json.dumps(rows[key], sort_keys=True) + "\n")
        partial.replace(self.path)
        log.debug("Mirrored %s states to %s (%s rows)", len(self._pending), self.path, len(rows))
        self._pending.clear()

    def _read_rows(self) -> dict[tuple[str, str], dict[str, object]]:
        if not self.path.exists():
            return {}
        rows: dict[tuple[str, str], dict[str, object]] = {}
        with self.path.open(encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                row = json.loads(line)
                rows[(row["member_email"], row["product_code"])] = row
        return rows


if TYPE_CHECKING:
    _mirror_check: EngagementStateMirror = JsonlStateMirror(Path("states.jsonl"))
