"""In-memory CRM tag store used in place of ActiveCampaign."""

from __future__ import annotations

from engagesync.domain.errors import RemoteUnavailableError
from engagesync.domain.ports import TagStore


class FakeTagStore(TagStore):
    """Contacts and tags kept in dictionaries, with per-tag failure injection."""

    def __init__(self, contacts: dict[str, set[str]] | None = None) -> None:
        self.contacts: dict[str, set[str]] = {
            email: set(tags) for email, tags in (contacts or {}).items()
        }
        self.tag_ids: dict[str, str] = {}
        self.fail_apply: set[str] = set()
        self.fail_remove: set[str] = set()
        self.fail_create: set[str] = set()
        self.fail_list = False
        self.calls: list[tuple[str, ...]] = []

    def tags_of(self, email: str) -> set[str]:
        return set(self.contacts.get(email, set()))

    def list_tags_for_contact(self, email: str) -> list[str]:
        self.calls.append(("list", email))
        if self.fail_list:
            raise RemoteUnavailableError("CRM is down")
        return sorted(self.contacts.get(email, set()))

    def apply_tag(self, email: str, tag_name: str, *, tag_id: str | None = None) -> bool:
        self.calls.append(("apply", email, tag_name))
        if tag_name in self.fail_apply:
            raise RemoteUnavailableError(f"apply {tag_name} rejected")
        self.contacts.setdefault(email, set()).add(tag_name)
        return True

    def remove_tag(self, email: str, tag_name: str) -> bool:
        self.calls.append(("remove", email, tag_name))
        if tag_name in self.fail_remove:
            raise RemoteUnavailableError(f"remove {tag_name} rejected")
        self.contacts.get(email, set()).discard(tag_name)
        return True

    def get_or_create_tag(self, tag_name: str) -> str:
        self.calls.append(("create", tag_name))
        if tag_name in self.fail_create:
            raise RemoteUnavailableError(f"create {tag_name} rejected")
        return self.tag_ids.setdefault(tag_name, str(len(self.tag_ids) + 1))

    def mutating_calls(self) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] in {"apply", "remove"}]
