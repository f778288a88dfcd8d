"""HTTP date handling for conditional headers.

Every timestamp that takes part in a precondition check goes through
normalize_timestamp first, so comparisons happen in UTC with one-second
resolution, the same precision the wire format carries.
"""

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Optional, Union


def normalize_timestamp(value: datetime) -> datetime:
    """Convert a datetime to UTC and drop sub-second precision.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def format_http_date(value: datetime) -> str:
    """Format a datetime as "Day, DD Mon YYYY HH:MM:SS +0000"."""
    return format_datetime(normalize_timestamp(value))


def parse_http_date(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a wire date into a normalized UTC datetime.

    Args:
        value: A header value, or a datetime passed through by a caller.

    Returns:
        The normalized datetime, or None if the value is missing or
        unparseable. An unparseable date header is ignored, never fatal.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return normalize_timestamp(value)
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return normalize_timestamp(parsed)


def utcnow() -> datetime:
    """Current time, normalized."""
    return normalize_timestamp(datetime.now(timezone.utc))
