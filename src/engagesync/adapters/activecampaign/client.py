"""Tag store backed by the ActiveCampaign v3 REST API."""

from __future__ import annotations

import asyncio
import json
from logging import getLogger
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import ValidationError

from engagesync.adapters.http_resilience import ResilientClient
from engagesync.config.activecampaign import ActiveCampaignConfig, get_activecampaign_config
from engagesync.domain.errors import RemoteUnavailableError
from engagesync.domain.ports import TagStore

from .schema import (
    ContactPayload,
    ContactResponse,
    ContactsResponse,
    ContactTagPayload,
    ContactTagsResponse,
    ErrorResponse,
    TagPayload,
    TagResponse,
    TagsResponse,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from types import TracebackType

    from engagesync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

API_PREFIX = "/api/3"
_UNPROCESSABLE = 422


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _payload(response: httpx.Response) -> Any:
    response.raise_for_status()
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise RemoteUnavailableError(
            f"ActiveCampaign returned a non-JSON body for {response.request.url}"
        ) from exc


class ActiveCampaignTagStore:
    """``TagStore`` implementation for ActiveCampaign.

    The store keeps one async client and one event loop (``asyncio.Runner``)
    open until :meth:`close`, so sequential callers pay for connection setup
    once. Tag names are memoised by id for the lifetime of the store.
    """

    def __init__(
        self,
        config: ActiveCampaignConfig | None = None,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] = _default_client_factory,
    ) -> None:
        self.config = config or get_activecampaign_config()
        self._client_factory = client_factory
        self._runner: asyncio.Runner | None = None
        self._client: ResilientClient | None = None
        self._tag_names: dict[str, str] = {}

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._runner is None:
            return
        if self._client is not None:
            self._runner.run(self._client.aclose())
            self._client = None
        self._runner.close()
        self._runner = None

    # TagStore -----------------------------------------------------------------

    def list_tags_for_contact(self, email: str) -> list[str]:
        return self._run(self._list_tags_for_contact(email), f"list tags of {email}")

    def apply_tag(self, email: str, tag_name: str, *, tag_id: str | None = None) -> bool:
        return self._run(self._apply_tag(email, tag_name, tag_id), f"apply {tag_name!r} to {email}")

    def remove_tag(self, email: str, tag_name: str) -> bool:
        return self._run(self._remove_tag(email, tag_name), f"remove {tag_name!r} from {email}")

    def get_or_create_tag(self, tag_name: str) -> str:
        return self._run(self._get_or_create_tag(tag_name), f"get or create tag {tag_name!r}")

    # plumbing -----------------------------------------------------------------

    def _run[T](self, coro: Coroutine[Any, Any, T], action: str) -> T:
        if self._runner is None:
            self._runner = asyncio.Runner()
        try:
            return self._runner.run(coro)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteUnavailableError(
                f"ActiveCampaign could not {action}: HTTP {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(f"ActiveCampaign could not {action}: {exc}") from exc
        except ValidationError as exc:
            raise RemoteUnavailableError(
                f"Unexpected ActiveCampaign payload while trying to {action}"
            ) from exc

    @property
    def client(self) -> ResilientClient:
        if self._client is None:
            self._client = self._client_factory(self.config.resilience)
        return self._client

    # async operations ---------------------------------------------------------

    async def _list_tags_for_contact(self, email: str) -> list[str]:
        contact = await self._find_contact(email)
        if contact is None:
            return []
        links = await self._contact_tag_links(contact.id)
        return [await self._tag_name(link.tag) for link in links]

    async def _apply_tag(self, email: str, tag_name: str, tag_id: str | None) -> bool:
        contact = await self._find_contact(email) or await self._create_contact(email)
        resolved_id = tag_id or await self._get_or_create_tag(tag_name)
        links = await self._contact_tag_links(contact.id)
        if any(link.tag == resolved_id for link in links):
            log.debug("%s already carries %r", email, tag_name)
            return True
        response = await self.client.post(
            f"{API_PREFIX}/contactTags",
            json={"contactTag": {"contact": contact.id, "tag": resolved_id}},
        )
        _payload(response)
        return True

    async def _remove_tag(self, email: str, tag_name: str) -> bool:
        contact = await self._find_contact(email)
        if contact is None:
            log.warning("Cannot remove %r: no ActiveCampaign contact for %s", tag_name, email)
            return False
        tag = await self._find_tag(tag_name)
        if tag is None:
            return True
        links = [link for link in await self._contact_tag_links(contact.id) if link.tag == tag.id]
        for link in links:
            response = await self.client.delete(f"{API_PREFIX}/contactTags/{link.id}")
            if response.status_code == httpx.codes.NOT_FOUND:
                continue
            response.raise_for_status()
        return True

    async def _get_or_create_tag(self, tag_name: str) -> str:
        existing = await self._find_tag(tag_name)
        if existing is not None:
            return existing.id

        response = await self.client.post(
            f"{API_PREFIX}/tags",
            json={"tag": {"tag": tag_name, "tagType": "contact", "description": ""}},
        )
        if response.status_code == _UNPROCESSABLE and self._is_duplicate(response):
            log.info("Tag %r was created concurrently; looking it up again", tag_name)
            existing = await self._find_tag(tag_name)
            if existing is None:
                raise RemoteUnavailableError(
                    f"ActiveCampaign reported tag {tag_name!r} as duplicate but it was not found",
                    status_code=_UNPROCESSABLE,
                )
            return existing.id

        tag = TagResponse.model_validate(_payload(response)).tag
        self._tag_names[tag.id] = tag.name
        log.info("Created ActiveCampaign tag %r (id=%s)", tag.name, tag.id)
        return tag.id

    async def _find_contact(self, email: str) -> ContactPayload | None:
        response = await self.client.get(f"{API_PREFIX}/contacts", params={"email": email})
        contacts = ContactsResponse.model_validate(_payload(response)).contacts
        wanted = email.strip().lower()
        return next((contact for contact in contacts if contact.email.lower() == wanted), None)

    async def _create_contact(self, email: str) -> ContactPayload:
        response = await self.client.post(
            f"{API_PREFIX}/contacts", json={"contact": {"email": email}}
        )
        return ContactResponse.model_validate(_payload(response)).contact

    async def _contact_tag_links(self, contact_id: str) -> list[ContactTagPayload]:
        response = await self.client.get(f"{API_PREFIX}/contacts/{contact_id}/contactTags")
        return ContactTagsResponse.model_validate(_payload(response)).contact_tags

    async def _find_tag(self, tag_name: str) -> TagPayload | None:
        response = await self.client.get(f"{API_PREFIX}/tags", params={"search": tag_name})
        tags = TagsResponse.model_validate(_payload(response)).tags
        for tag in tags:
            self._tag_names[tag.id] = tag.name
        exact = next((tag for tag in tags if tag.name == tag_name), None)
        if exact is not None:
            return exact
        folded = tag_name.casefold()
        return next((tag for tag in tags if tag.name.casefold() == folded), None)

    async def _tag_name(self, tag_id: str) -> str:
        cached = self._tag_names.get(tag_id)
        if cached is not None:
            return cached
        response = await self.client.get(f"{API_PREFIX}/tags/{tag_id}")
        tag = TagResponse.model_validate(_payload(response)).tag
        self._tag_names[tag.id] = tag.name
        return tag.name

    @staticmethod
    def _is_duplicate(response: httpx.Response) -> bool:
        try:
            return ErrorResponse.model_validate(response.json()).is_duplicate()
        except (json.JSONDecodeError, ValidationError):
            return False


if TYPE_CHECKING:
    _store_check: TagStore = ActiveCampaignTagStore()
