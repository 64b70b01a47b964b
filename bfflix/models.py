"""Canonical records produced from BFFlix API payloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """Media type shown on posts."""

    MOVIE = "Movie"
    SHOW = "Show"

    @property
    def lookup_type(self) -> str:
        """Return the metadata provider's type segment (``movie`` or ``tv``)."""

        return "tv" if self is MediaKind.SHOW else "movie"


class ViewingKind(str, Enum):
    """Media type recorded on a viewing; ``UNKNOWN`` when the server sent nothing usable."""

    MOVIE = "movie"
    TV = "tv"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        if self is ViewingKind.MOVIE:
            return "Movie"
        if self is ViewingKind.TV:
            return "Show"
        return ""


class CircleVisibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class CanonicalPost(BaseModel):
    """A feed or circle post with every field resolved to a concrete value."""

    model_config = ConfigDict(frozen=True)

    id: str
    author_name: str = "Unknown user"
    author_avatar_url: str | None = None
    circle_names: list[str] = Field(default_factory=list)
    created_at: datetime
    title: str = ""
    year: int | None = None
    media_type: MediaKind = MediaKind.MOVIE
    external_id: str | None = None
    rating: int = Field(default=0, ge=0, le=5)
    body: str = ""
    services: list[str] = Field(default_factory=list)
    like_count: int = Field(default=0, ge=0)
    comment_count: int = Field(default=0, ge=0)
    image_url: str | None = None

    @property
    def needs_enrichment(self) -> bool:
        return bool(self.external_id) and (not self.title or not self.image_url)


class CanonicalViewing(BaseModel):
    """A logged viewing from the user's history."""

    model_config = ConfigDict(frozen=True)

    id: str
    media_type: ViewingKind = ViewingKind.UNKNOWN
    external_id: str | None = None
    display_title: str = ""
    watched_at: datetime | None = None
    logged_at: datetime | None = None
    rating: int = Field(default=0, ge=0, le=5)
    comment: str = ""
    poster_url: str | None = None
    circle_names: list[str] = Field(default_factory=list)

    @property
    def needs_enrichment(self) -> bool:
        return (
            bool(self.external_id)
            and self.media_type is not ViewingKind.UNKNOWN
            and (not self.display_title or not self.poster_url)
        )

    def display_name(self) -> str:
        """Return a human-friendly title for list rows."""

        title = self.display_title.strip()
        if title:
            return title
        if self.external_id:
            return f"TMDB #{self.external_id}"
        return "Untitled"


class CanonicalMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Member"
    email: str | None = None


class CanonicalCircle(BaseModel):
    """Circle detail including its member list."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Untitled circle"
    description: str = ""
    visibility: CircleVisibility = CircleVisibility.PRIVATE
    members: list[CanonicalMember] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None


class StreamingService(BaseModel):
    """Entry of the streaming-service catalog."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    external_provider_id: int | None = None
    display_priority: int = 0
    logo_path: str | None = None


class CanonicalProfile(BaseModel):
    """The signed-in user's profile as last confirmed by the server."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    username: str | None = None
    avatar_url: str | None = None


class CanonicalComment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    author_name: str = "Unknown user"
    text: str = ""
    created_at: datetime


class LikeState(BaseModel):
    model_config = ConfigDict(frozen=True)

    liked: bool = False
    like_count: int = Field(default=0, ge=0)


@dataclass(frozen=True, slots=True)
class TitleMetadata:
    """Display fields returned by the metadata provider; either may be empty."""

    title: str | None = None
    poster_url: str | None = None
    year: int | None = None

    @property
    def empty(self) -> bool:
        return not (self.title or self.poster_url)
