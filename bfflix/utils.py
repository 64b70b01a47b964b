"""Utility helpers for the BFFlix sync layer."""

from __future__ import annotations

import base64
import math
import re
from datetime import datetime, timezone
from typing import Any


DATA_URL_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")
YEAR_RE = re.compile(r"(18|19|20|21)\d{2}")

MIN_RATING = 0
MAX_RATING = 5


def is_number(value: Any) -> bool:
    """Return True for real ints/floats, excluding booleans."""

    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_rating(value: Any) -> int | None:
    """Round and clamp a rating into ``0..5``; None when it is not numeric."""

    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not is_number(value):
        return None
    if isinstance(value, int):
        return max(MIN_RATING, min(MAX_RATING, value))
    if math.isnan(value):
        return None
    if math.isinf(value):
        return MAX_RATING if value > 0 else MIN_RATING
    rounded = math.floor(value + 0.5)
    return max(MIN_RATING, min(MAX_RATING, int(rounded)))


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings (``Z`` suffix included) or epoch milliseconds."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    elif is_number(value):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_year(value: Any) -> int | None:
    """Return a plausible release year from an int or a date-like string."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1800 <= value <= 2199 else None
    if not isinstance(value, str):
        return None
    match = YEAR_RE.search(value)
    if not match:
        return None
    return int(match.group(0))


def encode_data_url(content: bytes, mime_type: str) -> str:
    """Embed binary image content as a base64 ``data:`` URL."""

    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def is_image_data_url(value: str) -> bool:
    return bool(DATA_URL_RE.match(value))
