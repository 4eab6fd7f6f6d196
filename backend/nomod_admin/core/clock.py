"""Time helpers shared by the auth services."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from pydantic import TypeAdapter, ValidationError

Clock = Callable[[], datetime]

_DATETIME = TypeAdapter(datetime)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime, or ``None`` if unusable."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            # PostgREST trims trailing zeros from fractional seconds
            parsed = _DATETIME.validate_python(value.strip())
        except ValidationError:
            return None
    if parsed.tzinfo is None:
        # naive values come back from SQLite; they were written as UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
