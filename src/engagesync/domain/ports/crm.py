"""Port for the remote CRM, treated as an opaque per-contact tag store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TagStore(Protocol):
    """Per-contact tag operations.

    Implementations raise ``RemoteUnavailableError`` when a call fails or times
    out; a ``False`` return means the remote answered but declined the change.
    Transport retries are the implementation's concern.
    """

    def list_tags_for_contact(self, email: str) -> list[str]: ...

    def apply_tag(self, email: str, tag_name: str, *, tag_id: str | None = None) -> bool: ...

    def remove_tag(self, email: str, tag_name: str) -> bool: ...

    def get_or_create_tag(self, tag_name: str) -> str: ...
