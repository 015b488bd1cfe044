"""
Timestamp helpers.

Message timestamps arrive as ISO-8601 strings from several sources, with
mixed offsets (``Z``, ``+00:00``, ``+05:30``) and fractional precision.
Comparing them as strings is wrong, so every timestamp is converted to an
absolute instant (epoch milliseconds) before it is compared.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_iso_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string to a timezone-aware datetime.

    Naive values are treated as UTC.

    Args:
        timestamp_str: ISO 8601 formatted timestamp (e.g., "2025-10-16T19:12:28.024Z")

    Returns:
        Parsed datetime object (timezone-aware)

    Raises:
        ValueError: If the timestamp string is invalid
    """
    try:
        parsed = date_parser.isoparse(timestamp_str)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def parse_epoch_ms(timestamp_str: Optional[str]) -> Optional[int]:
    """
    Parse a timestamp string to epoch milliseconds, or None if unparseable.

    Unparseable values are logged and never raise.
    """
    if not timestamp_str:
        return None
    try:
        return to_epoch_ms(parse_iso_timestamp(timestamp_str))
    except ValueError:
        logger.warning(f"Unparseable message timestamp: {timestamp_str!r}")
        return None


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(value: datetime) -> str:
    """Format a datetime as ISO-8601 with a Z suffix for UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
