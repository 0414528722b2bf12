"""
Shared pieces of the Pydantic v2 API schemas.

All request and response models use camelCase field names to match what
the web app sends and expects.  This is achieved via Pydantic's
``alias_generator`` together with ``populate_by_name=True`` so both
snake_case and camelCase are accepted for construction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from washpro.models.base import as_utc


def _to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase."""
    parts = name.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_in_utc(cls, value: Any) -> Any:
        # SQLite hands back naive timestamps; keep the wire format stable.
        if isinstance(value, datetime):
            return as_utc(value)
        return value


class PaginationMeta(CamelModel):
    """Pagination metadata included in every paginated response."""

    page: int = Field(ge=1, description="Current page number (1-indexed)")
    page_size: int = Field(ge=1, description="Number of items per page")
    total_items: int = Field(ge=0, description="Total number of matching items")
    total_pages: int = Field(ge=0, description="Total number of pages")


class MessageOut(CamelModel):
    message: str
