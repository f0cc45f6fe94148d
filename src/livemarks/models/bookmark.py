"""Bookmark data model."""

from datetime import datetime, timezone
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NewBookmark(BaseModel):
    """Insert payload for a bookmark; the store assigns id and created_at."""

    title: str = Field(..., min_length=1, max_length=500, description="Bookmark title")
    url: str = Field(..., min_length=1, max_length=2048, description="The bookmarked URL")
    user_id: str = Field(..., min_length=1, description="Owner identifier")

    @field_validator("title", "url")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Validate field is not empty or whitespace."""
        if not v.strip():
            raise ValueError("Field cannot be empty or whitespace")

        return v.strip()


class Bookmark(NewBookmark):
    """A stored bookmark as returned by the store and carried by the change feed."""

    id: str = Field(..., min_length=1, description="Store-assigned unique identifier")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the store created the bookmark",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "title": "Example",
                "url": "https://example.com",
                "created_at": "2026-02-03T10:30:00Z",
                "user_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
            }
        }
    )

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so ordering comparisons stay valid."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)

        return v


def newest_first(bookmarks: Iterable[Bookmark]) -> List[Bookmark]:
    """Return bookmarks ordered by creation time, newest first."""
    return sorted(bookmarks, key=lambda b: b.created_at, reverse=True)
