"""Port for publishing engagement states to a secondary store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from engagesync.domain.model import EngagementState


@runtime_checkable
class EngagementStateMirror(Protocol):
    """Best-effort copy of engagement states; failures never affect reconciliation."""

    def publish(self, state: EngagementState) -> None: ...

    def flush(self) -> None:
        """Write out whatever ``publish`` buffered."""
        ...
