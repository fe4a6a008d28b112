"""Utility functions for FitConnect.

Datetime handling, input normalization and small helpers shared by the
services.
"""

import math
import re
from datetime import UTC, datetime
from typing import Any

from dateutil import parser as dateutil_parser  # type: ignore[import-untyped]

from fitconnect.errors import ValidationError

_HTTP_URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)
_DATA_IMAGE_RE = re.compile(r"^data:image/[a-zA-Z0-9+.-]+\s*;\s*base64\s*,\s*.+", re.DOTALL)
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO8601 string or datetime into a timezone-aware UTC datetime.

    Naive datetimes (as returned by SQLite) are assumed to already be UTC.

    Args:
        value: ISO8601 timestamp string, datetime object, or None

    Returns:
        Timezone-aware datetime in UTC, or None if input is None

    Raises:
        ValueError: If the timestamp format is invalid

    Example:
        >>> parse_datetime("2024-01-15T10:30:00Z").tzinfo
        datetime.timezone.utc
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    dt = dateutil_parser.isoparse(value)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def utc_now() -> datetime:
    """Get current UTC timestamp as timezone-aware datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime | None) -> str | None:
    """Format datetime as ISO8601 string with 'Z' suffix.

    Example:
        >>> format_iso(datetime(2024, 1, 15, 10, 30, tzinfo=UTC))
        '2024-01-15T10:30:00Z'
    """
    if dt is None:
        return None
    return parse_datetime(dt).isoformat().replace("+00:00", "Z")


def is_valid_image_ref(value: str | None) -> bool:
    """Check that an image reference is an http(s) URL or an inline data URL.

    Empty values count as "no image" and are accepted.

    Example:
        >>> is_valid_image_ref("https://example.com/a.jpg")
        True
        >>> is_valid_image_ref("data:image/png;base64,iVBORw0KGgo=")
        True
        >>> is_valid_image_ref("ftp://example.com/a.jpg")
        False
    """
    if value is None or not value.strip():
        return True
    value = value.strip()
    return bool(_HTTP_URL_RE.match(value) or _DATA_IMAGE_RE.match(value))


def is_valid_email(value: str) -> bool:
    """Loose structural email check (local@domain.tld)."""
    return bool(_EMAIL_RE.match(value))


def normalize_email(value: str) -> str:
    """Trim and lower-case an email address."""
    return value.strip().lower()


def blank_to_none(value: str | None) -> str | None:
    """Collapse empty or whitespace-only strings to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def is_non_negative_real(value: Any) -> bool:
    """True for finite int/float values >= 0; booleans are rejected.

    Example:
        >>> is_non_negative_real(3.5)
        True
        >>> is_non_negative_real(True)
        False
        >>> is_non_negative_real(float("nan"))
        False
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def pair_key(a: int, b: int) -> tuple[int, int]:
    """Order two account ids into the unordered-pair key (low, high).

    Example:
        >>> pair_key(9, 2)
        (2, 9)
    """
    return (a, b) if a <= b else (b, a)


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    """Resolve a requested page size against a default and a hard cap.

    Example:
        >>> clamp_limit(None, 20, 50)
        20
        >>> clamp_limit(500, 20, 50)
        50
    """
    if limit is None:
        return default
    return min(limit, maximum)


def resolve_page(
    limit: int | None, offset: int | None, default: int, maximum: int
) -> tuple[int, int]:
    """Validate pagination arguments and apply the default and cap.

    Raises:
        ValidationError: If limit or offset is not a non-negative integer

    Example:
        >>> resolve_page(None, None, 50, 50)
        (50, 0)
        >>> resolve_page(500, 10, 50, 50)
        (50, 10)
    """
    for name, value in (("limit", limit), ("offset", offset)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer")
    return clamp_limit(limit, default, maximum), offset or 0


def truncate(text: str, length: int = 80) -> str:
    """Shorten text for log lines and notification messages."""
    text = " ".join(text.split())
    return text if len(text) <= length else text[: length - 3] + "..."
