"""
Listing entity kind.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .adapters.remote_fetcher import empty_fetcher
from .models import EntityKind


LISTING_TYPE_PREFIX = "stListing"
LISTING_TTL_MS = 180


class ListingDTO(BaseModel):
    """A listing as returned by the remote source."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Listing ID")
    title: Optional[str] = Field(None, description="Listing title")
    description: Optional[str] = Field(None, description="Listing description")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Free-form listing attributes")


def _listing_id(listing: ListingDTO) -> str:
    return listing.id


def _serialize_listing(listing: ListingDTO) -> bytes:
    return listing.model_dump_json().encode("utf-8")


def _deserialize_listing(payload: bytes) -> ListingDTO:
    return ListingDTO.model_validate_json(payload)


def listing_kind(fetch_remote=empty_fetcher, ttl_millis: int = LISTING_TTL_MS) -> EntityKind[ListingDTO]:
    """Build the listing kind, by default with a remote that supplies nothing."""
    return EntityKind(
        type_prefix=LISTING_TYPE_PREFIX,
        ttl_millis=ttl_millis,
        identifier_of=_listing_id,
        fetch_remote=fetch_remote,
        serialize=_serialize_listing,
        deserialize=_deserialize_listing
    )
