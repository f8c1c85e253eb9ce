"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Current time as naive UTC, matching the timestamp columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime for storage.

    Aware datetimes are converted to UTC; naive ones are assumed to be UTC
    already. The tzinfo is dropped because timestamp columns are naive UTC.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a stored naive timestamp so it serializes with an offset"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp as sent by browsers (trailing 'Z' allowed).

    Raises:
        ValueError: If the string is not a valid timestamp
    """
    if not value or not value.strip():
        raise ValueError("Empty timestamp")
    return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def validate_timezone(name: Optional[str]) -> Optional[str]:
    """
    Validate an IANA timezone name (e.g. Australia/Sydney).

    Raises:
        ValueError: If the zone is unknown
    """
    if not name:
        return name
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e
    return name


def validate_hex_color(color: Optional[str]) -> Optional[str]:
    """Validate a #rrggbb display color, returned lowercase"""
    if not color:
        return color
    if not re.match(r"^#[0-9a-fA-F]{6}$", color):
        raise ValueError("Color must be a hex value like #3b82f6")
    return color.lower()
