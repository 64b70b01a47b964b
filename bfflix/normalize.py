"""Turn loosely shaped BFFlix payloads into canonical records.

Every canonical field is described by an ordered tuple of decoders. A decoder
inspects one candidate location of the raw payload (a top-level key, a nested
path, a legacy key, or the payload itself) and returns either ``Decoded`` with a
type-matching value or ``Missing`` with the reason it did not apply. The first
``Decoded`` wins; when every candidate is ``Missing`` the field takes its
documented default. Records whose identifier cannot be derived are dropped from
their batch and counted, never raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Iterable, Mapping, Sequence, TypeVar, Union

from .models import (
    CanonicalCircle,
    CanonicalComment,
    CanonicalMember,
    CanonicalPost,
    CanonicalProfile,
    CanonicalViewing,
    CircleVisibility,
    LikeState,
    MediaKind,
    StreamingService,
    ViewingKind,
)
from .utils import coerce_rating, is_number, parse_datetime, parse_year

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ENVELOPE_KEYS: tuple[str, ...] = ("items", "data", "results")


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """A candidate location held a usable value."""

    value: T
    source: str
    ok: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Missing:
    """A candidate location was absent, null or of the wrong type."""

    source: str
    reason: str
    ok: ClassVar[bool] = False


DecodeResult = Union[Decoded, Missing]
Decoder = Callable[[Any], DecodeResult]
Coercer = Callable[[Any], Any]

_REJECT = object()


# -- coercers ---------------------------------------------------------------
# Each coercer returns the converted value or ``_REJECT`` when the raw value
# does not have the expected shape.


def as_text(value: Any) -> Any:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return _REJECT


def as_identifier(value: Any) -> Any:
    if isinstance(value, bool):
        return _REJECT
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Mapping) and "$oid" in value:
        return as_identifier(value["$oid"])
    return as_text(value)


def as_int(value: Any) -> Any:
    if isinstance(value, bool):
        return _REJECT
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return _REJECT
    return _REJECT


def as_count(value: Any) -> Any:
    number = as_int(value)
    if number is _REJECT:
        if is_number(value) and math.isfinite(value):
            return max(0, int(value))
        return _REJECT
    return max(0, number)


def as_rating(value: Any) -> Any:
    rating = coerce_rating(value)
    return _REJECT if rating is None else rating


def as_year(value: Any) -> Any:
    year = parse_year(value)
    return _REJECT if year is None else year


def as_datetime(value: Any) -> Any:
    parsed = parse_datetime(value)
    return _REJECT if parsed is None else parsed


def as_bool(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    return _REJECT


def as_text_list(value: Any) -> Any:
    if not isinstance(value, list):
        return _REJECT
    return [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]


def as_name_list(value: Any) -> Any:
    """Accept a list of names or a list of objects carrying a ``name``."""

    if not isinstance(value, list):
        return _REJECT
    names: list[str] = []
    for entry in value:
        if isinstance(entry, Mapping):
            entry = entry.get("name")
        if isinstance(entry, str) and entry.strip():
            names.append(entry.strip())
    return names


def as_enum(table: Mapping[str, Enum]) -> Coercer:
    """Map free text onto an enumeration case-insensitively."""

    def coerce(value: Any) -> Any:
        if not isinstance(value, str):
            return _REJECT
        return table.get(value.strip().casefold(), _REJECT)

    return coerce


# -- decoders ---------------------------------------------------------------


def at(*path: str, coerce: Coercer = as_text) -> Decoder:
    """Decode the value found by walking ``path`` through nested mappings."""

    label = ".".join(path)

    def decode(source: Any) -> DecodeResult:
        current = source
        for part in path:
            if not isinstance(current, Mapping) or part not in current:
                return Missing(label, "absent")
            current = current[part]
        if current is None:
            return Missing(label, "null")
        value = coerce(current)
        if value is _REJECT:
            return Missing(label, f"unexpected {type(current).__name__}")
        return Decoded(value, label)

    return decode


def itself(coerce: Coercer = as_identifier) -> Decoder:
    """Decode the payload as a whole, for records sent as a bare scalar."""

    def decode(source: Any) -> DecodeResult:
        if isinstance(source, (Mapping, list)) or source is None:
            return Missing("<self>", "not a scalar")
        value = coerce(source)
        if value is _REJECT:
            return Missing("<self>", f"unexpected {type(source).__name__}")
        return Decoded(value, "<self>")

    return decode


def decode_first(source: Any, decoders: Sequence[Decoder]) -> DecodeResult:
    """Run ``decoders`` in order and return the first successful result."""

    result: DecodeResult = Missing("<none>", "no candidates")
    for decoder in decoders:
        result = decoder(source)
        if result.ok:
            return result
    return result


def resolve(
    source: Any,
    decoders: Sequence[Decoder],
    default: Any = None,
    *,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    result = decode_first(source, decoders)
    if result.ok:
        return result.value
    if default_factory is not None:
        return default_factory()
    return default


# -- field tables -----------------------------------------------------------

RECORD_ID = (at("id", coerce=as_identifier), at("_id", coerce=as_identifier), itself())

MEDIA_KINDS: dict[str, Enum] = {
    "movie": MediaKind.MOVIE,
    "film": MediaKind.MOVIE,
    "show": MediaKind.SHOW,
    "tv": MediaKind.SHOW,
    "series": MediaKind.SHOW,
}
VIEWING_KINDS: dict[str, Enum] = {
    "movie": ViewingKind.MOVIE,
    "film": ViewingKind.MOVIE,
    "tv": ViewingKind.TV,
    "show": ViewingKind.TV,
    "series": ViewingKind.TV,
}
VISIBILITIES: dict[str, Enum] = {
    "public": CircleVisibility.PUBLIC,
    "private": CircleVisibility.PRIVATE,
}

TITLE = (at("title"), at("mediaTitle"), at("movieTitle"), at("showTitle"), at("name"))
YEAR = (at("year", coerce=as_year), at("mediaYear", coerce=as_year))
RATING = (at("rating", coerce=as_rating), at("score", coerce=as_rating))
EXTERNAL_ID = (
    at("tmdbId", coerce=as_identifier),
    at("tmdb_id", coerce=as_identifier),
    at("externalId", coerce=as_identifier),
    at("external_id", coerce=as_identifier),
)
CREATED_AT = (at("createdAt", coerce=as_datetime), at("created_at", coerce=as_datetime))

POST_AUTHOR = (
    at("authorName"),
    at("author", "name"),
    at("author", "fullName"),
    at("author", "displayName"),
)
POST_AUTHOR_AVATAR = (at("author", "avatarUrl"), at("authorAvatarUrl"))
POST_CIRCLES = (
    at("circleNames", coerce=as_text_list),
    at("circles", coerce=as_name_list),
)
POST_MEDIA_TYPE = tuple(
    at(key, coerce=as_enum(MEDIA_KINDS)) for key in ("type", "mediaType", "media_type")
)
POST_BODY = (at("body"), at("text"), at("comment"))
POST_SERVICES = tuple(
    at(key, coerce=as_name_list) for key in ("services", "platforms", "playableOn", "providers")
)
POST_LIKES = (at("likeCount", coerce=as_count), at("likes", coerce=as_count))
POST_COMMENTS = (at("commentCount", coerce=as_count), at("comments", coerce=as_count))
POST_IMAGE = (at("imageUrl"), at("posterUrl"), at("backdropUrl"))

VIEWING_MEDIA_TYPE = tuple(
    at(key, coerce=as_enum(VIEWING_KINDS)) for key in ("type", "mediaType", "media_type")
)
VIEWING_TITLE = (at("title"), at("displayTitle"), at("name"), at("mediaTitle"))
VIEWING_WATCHED_AT = (at("watchedAt", coerce=as_datetime), at("watched_at", coerce=as_datetime))
VIEWING_LOGGED_AT = (at("loggedAt", coerce=as_datetime),) + CREATED_AT
VIEWING_COMMENT = (at("comment"), at("note"), at("body"), at("text"))
VIEWING_POSTER = (at("posterUrl"), at("poster_url"), at("imageUrl"))
VIEWING_CIRCLES = (at("circles", coerce=as_name_list), at("circleNames", coerce=as_text_list))

CIRCLE_ID = (
    at("id", coerce=as_identifier),
    at("_id", coerce=as_identifier),
    at("circleId", coerce=as_identifier),
    at("circle", "id", coerce=as_identifier),
    at("circle", "_id", coerce=as_identifier),
    at("circle", "circleId", coerce=as_identifier),
    itself(),
)
CIRCLE_VISIBILITY = (at("visibility", coerce=as_enum(VISIBILITIES)),)
CIRCLE_CREATED_BY = (
    at("createdBy", coerce=as_identifier),
    at("createdBy", "_id", coerce=as_identifier),
    at("createdBy", "id", coerce=as_identifier),
)

MEMBER_ID = RECORD_ID[:2] + (
    at("user", "id", coerce=as_identifier),
    at("user", "_id", coerce=as_identifier),
    itself(),
)
MEMBER_NAME = (at("name"), at("user", "name"), at("displayName"))
MEMBER_EMAIL = (at("email"), at("user", "email"))

SERVICE_NAME = (at("name"), at("displayName"), at("title"), itself(as_text))
SERVICE_PROVIDER_ID = tuple(
    at(key, coerce=as_int)
    for key in ("tmdbProviderId", "externalProviderId", "providerId", "provider_id")
)
SERVICE_PRIORITY = (
    at("displayPriority", coerce=as_int),
    at("display_priority", coerce=as_int),
    at("priority", coerce=as_int),
)
SERVICE_LOGO = (at("logoPath"), at("logo_path"), at("logoUrl"))

PROFILE_NAME = (at("name"), at("displayName"), at("fullName"))
PROFILE_USERNAME = (at("username"), at("handle"))
PROFILE_AVATAR = (at("avatarUrl"), at("avatar_url"), at("avatar"))

COMMENT_TEXT = (at("text"), at("body"))


# -- record normalizers -----------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def record_id(raw: Any, decoders: Sequence[Decoder] = RECORD_ID) -> str | None:
    """Return the identifier of ``raw`` or None when none can be derived."""

    return resolve(raw, decoders)


def normalize_post(raw: Any) -> CanonicalPost | None:
    post_id = record_id(raw)
    if post_id is None:
        return None
    return CanonicalPost(
        id=post_id,
        author_name=resolve(raw, POST_AUTHOR, "Unknown user"),
        author_avatar_url=resolve(raw, POST_AUTHOR_AVATAR),
        circle_names=resolve(raw, POST_CIRCLES, default_factory=list),
        created_at=resolve(raw, CREATED_AT, default_factory=_now),
        title=resolve(raw, TITLE, ""),
        year=resolve(raw, YEAR),
        media_type=resolve(raw, POST_MEDIA_TYPE, MediaKind.MOVIE),
        external_id=resolve(raw, EXTERNAL_ID),
        rating=resolve(raw, RATING, 0),
        body=resolve(raw, POST_BODY, ""),
        services=resolve(raw, POST_SERVICES, default_factory=list),
        like_count=resolve(raw, POST_LIKES, 0),
        comment_count=resolve(raw, POST_COMMENTS, 0),
        image_url=resolve(raw, POST_IMAGE),
    )


def normalize_viewing(raw: Any) -> CanonicalViewing | None:
    viewing_id = record_id(raw)
    if viewing_id is None:
        return None
    return CanonicalViewing(
        id=viewing_id,
        media_type=resolve(raw, VIEWING_MEDIA_TYPE, ViewingKind.UNKNOWN),
        external_id=resolve(raw, EXTERNAL_ID),
        display_title=resolve(raw, VIEWING_TITLE, ""),
        watched_at=resolve(raw, VIEWING_WATCHED_AT),
        logged_at=resolve(raw, VIEWING_LOGGED_AT),
        rating=resolve(raw, RATING, 0),
        comment=resolve(raw, VIEWING_COMMENT, ""),
        poster_url=resolve(raw, VIEWING_POSTER),
        circle_names=resolve(raw, VIEWING_CIRCLES, default_factory=list),
    )


def normalize_member(raw: Any) -> CanonicalMember | None:
    member_id = record_id(raw, MEMBER_ID)
    if member_id is None:
        return None
    return CanonicalMember(
        id=member_id,
        name=resolve(raw, MEMBER_NAME, "Member"),
        email=resolve(raw, MEMBER_EMAIL),
    )


def normalize_circle(raw: Any) -> CanonicalCircle | None:
    """Normalize a circle, unwrapping membership rows shaped ``{"circle": {...}}``."""

    circle_id = record_id(raw, CIRCLE_ID)
    if circle_id is None:
        return None
    base = raw.get("circle") if isinstance(raw, Mapping) else None
    if not isinstance(base, Mapping):
        base = raw
    members = normalize_batch(
        base.get("members") if isinstance(base, Mapping) else None,
        normalize_member,
        kind="member",
    )
    return CanonicalCircle(
        id=circle_id,
        name=resolve(base, (at("name"),), "Untitled circle"),
        description=resolve(base, (at("description"),), ""),
        visibility=resolve(base, CIRCLE_VISIBILITY, CircleVisibility.PRIVATE),
        members=members.items,
        created_by=resolve(base, CIRCLE_CREATED_BY),
        created_at=resolve(base, CREATED_AT),
    )


def normalize_service(raw: Any) -> StreamingService | None:
    service_id = record_id(raw)
    if service_id is None:
        return None
    return StreamingService(
        id=service_id,
        name=resolve(raw, SERVICE_NAME, ""),
        external_provider_id=resolve(raw, SERVICE_PROVIDER_ID),
        display_priority=resolve(raw, SERVICE_PRIORITY, 0),
        logo_path=resolve(raw, SERVICE_LOGO),
    )


def normalize_profile(raw: Any) -> CanonicalProfile:
    """Normalize ``/me``; a ``{"user": {...}}`` envelope is unwrapped first."""

    if isinstance(raw, Mapping) and isinstance(raw.get("user"), Mapping):
        raw = raw["user"]
    return CanonicalProfile(
        name=resolve(raw, PROFILE_NAME, ""),
        username=resolve(raw, PROFILE_USERNAME),
        avatar_url=resolve(raw, PROFILE_AVATAR),
    )


def normalize_comment(raw: Any) -> CanonicalComment | None:
    comment_id = record_id(raw)
    if comment_id is None:
        return None
    return CanonicalComment(
        id=comment_id,
        author_name=resolve(raw, POST_AUTHOR, "Unknown user"),
        text=resolve(raw, COMMENT_TEXT, ""),
        created_at=resolve(raw, CREATED_AT, default_factory=_now),
    )


def normalize_like_state(raw: Any) -> LikeState:
    return LikeState(
        liked=resolve(raw, (at("liked", coerce=as_bool),), False),
        like_count=resolve(raw, POST_LIKES, 0),
    )


# -- batches ----------------------------------------------------------------


@dataclass
class NormalizedBatch(Generic[R]):
    """Canonical records from one payload plus the number of entries dropped."""

    items: list[R] = field(default_factory=list)
    dropped: int = 0


def extract_items(payload: Any, keys: Iterable[str] = ENVELOPE_KEYS) -> list[Any]:
    """Return the raw entries of a bare list or of the first list found under ``keys``."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def extract_next_cursor(payload: Any) -> str | None:
    return resolve(
        payload,
        (
            at("nextCursor", coerce=as_identifier),
            at("next_cursor", coerce=as_identifier),
            at("pagination", "nextCursor", coerce=as_identifier),
        ),
    )


def normalize_batch(
    payload: Any,
    normalizer: Callable[[Any], R | None],
    *,
    kind: str,
    keys: Iterable[str] = ENVELOPE_KEYS,
) -> NormalizedBatch[R]:
    """Normalize every entry of ``payload`` and drop those without an identifier."""

    batch: NormalizedBatch[R] = NormalizedBatch()
    for raw in extract_items(payload, keys):
        record = normalizer(raw)
        if record is None:
            batch.dropped += 1
            continue
        batch.items.append(record)
    if batch.dropped:
        logger.warning(
            "Dropped %s %s record(s) without an identifier", batch.dropped, kind
        )
    return batch
