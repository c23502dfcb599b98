"""ActiveCampaign CRM adapter."""

from __future__ import annotations

from .client import ActiveCampaignTagStore
from .schema import ContactsResponse, ContactTagsResponse, ErrorResponse, TagResponse, TagsResponse

__all__ = [
    "ActiveCampaignTagStore",
    "ContactTagsResponse",
    "ContactsResponse",
    "ErrorResponse",
    "TagResponse",
    "TagsResponse",
]
