from __future__ import annotations

import json
from collections.abc import Callable, Iterator  # noqa: TC003

import httpx
import pytest

from engagesync.adapters.activecampaign import ActiveCampaignTagStore, ErrorResponse
from engagesync.adapters.http_resilience import ResilientClient
from engagesync.config import ActiveCampaignConfig, ResilienceConfig
from engagesync.domain.errors import RemoteUnavailableError

BASE_URL = "https://acct.api-us1.com"


class FakeActiveCampaignApi:
    """Just enough of the v3 API: contacts, tags and contact-tag links."""

    def __init__(self) -> None:
        self.contacts: dict[str, str] = {"1": "m@example.com"}
        self.tags: dict[str, str] = {"10": "P - Level 1", "11": "Q - Level 1"}
        self.links: dict[str, tuple[str, str]] = {"100": ("1", "11")}
        self.requests: list[tuple[str, str]] = []
        self.race_on_create = False
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "boom"})

        parts = path.split("/")
        if path == "/api/3/contacts" and method == "GET":
            email = request.url.params.get("email", "")
            found = [{"id": cid, "email": e} for cid, e in self.contacts.items() if e == email]
            return httpx.Response(200, json={"contacts": found})
        if path == "/api/3/contacts" and method == "POST":
            email = json.loads(request.content)["contact"]["email"]
            contact_id = str(len(self.contacts) + 1)
            self.contacts[contact_id] = email
            return httpx.Response(201, json={"contact": {"id": contact_id, "email": email}})
        if len(parts) == 6 and parts[3] == "contacts" and parts[5] == "contactTags":
            contact_id = parts[4]
            links = [
                {"id": link_id, "contact": contact, "tag": tag}
                for link_id, (contact, tag) in self.links.items()
                if contact == contact_id
            ]
            return httpx.Response(200, json={"contactTags": links})
        if path == "/api/3/contactTags" and method == "POST":
            body = json.loads(request.content)["contactTag"]
            link_id = str(200 + len(self.links))
            self.links[link_id] = (body["contact"], body["tag"])
            return httpx.Response(201, json={"contactTag": {"id": link_id, **body}})
        if parts[:4] == ["", "api", "3", "contactTags"] and method == "DELETE":
            if self.links.pop(parts[4], None) is None:
                return httpx.Response(404, json={"message": "No Result found"})
            return httpx.Response(200, json={})
        if path == "/api/3/tags" and method == "GET":
            search = request.url.params.get("search", "").lower()
            found = [
                {"id": tid, "tag": name, "tagType": "contact"}
                for tid, name in self.tags.items()
                if search in name.lower()
            ]
            return httpx.Response(200, json={"tags": found})
        if path == "/api/3/tags" and method == "POST":
            name = json.loads(request.content)["tag"]["tag"]
            tag_id = str(20 + len(self.tags))
            self.tags[tag_id] = name
            if self.race_on_create:
                return httpx.Response(
                    422,
                    json={"errors": [{"title": "The tag already exists", "code": "duplicate"}]},
                )
            return httpx.Response(201, json={"tag": {"id": tag_id, "tag": name}})
        if len(parts) == 5 and parts[3] == "tags" and method == "GET":
            return httpx.Response(200, json={"tag": {"id": parts[4], "tag": self.tags[parts[4]]}})
        return httpx.Response(404, json={"message": "unknown route"})

    def count(self, method: str, path: str) -> int:
        return self.requests.count((method, path))


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=BASE_URL, transport=httpx.MockTransport(async_handler)
        )
        return client

    return factory


@pytest.fixture
def api() -> FakeActiveCampaignApi:
    return FakeActiveCampaignApi()


@pytest.fixture
def store(api: FakeActiveCampaignApi) -> Iterator[ActiveCampaignTagStore]:
    config = ActiveCampaignConfig(
        api_url=BASE_URL,
        api_key="secret",
        resilience=ResilienceConfig(name="activecampaign", base_url=BASE_URL),
    )
    tag_store = ActiveCampaignTagStore(config, client_factory=_make_client_factory(api))
    yield tag_store
    tag_store.close()


def test_list_tags_resolves_names(store: ActiveCampaignTagStore) -> None:
    assert store.list_tags_for_contact("m@example.com") == ["Q - Level 1"]
    assert store.list_tags_for_contact("nobody@example.com") == []


def test_apply_tag_creates_missing_tag_and_links_it(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    assert store.apply_tag("m@example.com", "P - Level 2")

    assert api.count("POST", "/api/3/tags") == 1
    assert sorted(store.list_tags_for_contact("m@example.com")) == ["P - Level 2", "Q - Level 1"]


def test_apply_tag_creates_unknown_contact(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    assert store.apply_tag("new@example.com", "P - Level 1", tag_id="10")

    assert "new@example.com" in api.contacts.values()
    assert store.list_tags_for_contact("new@example.com") == ["P - Level 1"]
    assert api.count("GET", "/api/3/tags") == 0


def test_apply_tag_skips_existing_link(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    assert store.apply_tag("m@example.com", "Q - Level 1", tag_id="11")

    assert api.count("POST", "/api/3/contactTags") == 0


def test_remove_tag_deletes_link(store: ActiveCampaignTagStore, api: FakeActiveCampaignApi) -> None:
    assert store.remove_tag("m@example.com", "Q - Level 1")

    assert api.links == {}
    assert store.remove_tag("m@example.com", "Q - Level 1")
    assert store.remove_tag("m@example.com", "Does Not Exist")


def test_remove_tag_for_unknown_contact_is_declined(store: ActiveCampaignTagStore) -> None:
    assert store.remove_tag("ghost@example.com", "P - Level 1") is False


def test_get_or_create_tag_prefers_exact_match(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    api.tags["12"] = "P - Level 10"

    assert store.get_or_create_tag("P - Level 1") == "10"
    assert api.count("POST", "/api/3/tags") == 0


def test_get_or_create_tag_recovers_from_duplicate(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    api.race_on_create = True

    tag_id = store.get_or_create_tag("R - Level 1")

    assert api.tags[tag_id] == "R - Level 1"
    assert api.count("GET", "/api/3/tags") == 2


def test_http_errors_become_remote_unavailable(
    store: ActiveCampaignTagStore, api: FakeActiveCampaignApi
) -> None:
    api.fail_with = 503

    with pytest.raises(RemoteUnavailableError) as excinfo:
        store.list_tags_for_contact("m@example.com")

    assert excinfo.value.status_code == 503


def test_error_response_detects_duplicates() -> None:
    duplicate = ErrorResponse.model_validate({"errors": [{"title": "Tag already exists"}]})
    other = ErrorResponse.model_validate(
        {"errors": [{"title": "Invalid", "code": "field_invalid"}]}
    )

    assert duplicate.is_duplicate()
    assert not other.is_duplicate()
