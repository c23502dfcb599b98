"""Pydantic models describing the ActiveCampaign v3 payloads we use."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _id_to_str(value: object) -> object:
    if isinstance(value, int):
        return str(value)
    return value


class ActiveCampaignModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ContactPayload(ActiveCampaignModel):
    id: str
    email: str

    _normalize_id = field_validator("id", mode="before")(_id_to_str)


class ContactsResponse(ActiveCampaignModel):
    contacts: list[ContactPayload] = Field(default_factory=list)


class ContactResponse(ActiveCampaignModel):
    contact: ContactPayload


class TagPayload(ActiveCampaignModel):
    id: str
    name: str = Field(alias="tag")
    tag_type: str | None = Field(default=None, alias="tagType")

    _normalize_id = field_validator("id", mode="before")(_id_to_str)


class TagsResponse(ActiveCampaignModel):
    tags: list[TagPayload] = Field(default_factory=list)


class TagResponse(ActiveCampaignModel):
    tag: TagPayload


class ContactTagPayload(ActiveCampaignModel):
    id: str
    contact: str
    tag: str

    _normalize_ids = field_validator("id", "contact", "tag", mode="before")(_id_to_str)


class ContactTagsResponse(ActiveCampaignModel):
    contact_tags: list[ContactTagPayload] = Field(default_factory=list, alias="contactTags")


class ErrorPayload(ActiveCampaignModel):
    title: str | None = None
    detail: str | None = None
    code: str | None = None


class ErrorResponse(ActiveCampaignModel):
    errors: list[ErrorPayload] = Field(default_factory=list)

    def is_duplicate(self) -> bool:
        return any(
            (error.code or "").lower() == "duplicate"
            or "already exists" in (error.title or "").lower()
            for error in self.errors
        )
