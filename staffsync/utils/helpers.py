"""
Helper Utilities Module
Common utility functions used across the application.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pytz
from dateutil import parser as date_parser


def parse_remote_datetime(dt_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a remote API datetime string to Python datetime.

    Args:
        dt_string: Datetime string (ISO 8601 format)

    Returns:
        datetime object or None if parsing fails
    """
    if not dt_string:
        return None

    try:
        return date_parser.parse(dt_string)
    except (ValueError, TypeError, OverflowError):
        return None


def to_utc(value: datetime) -> datetime:
    """Normalise a datetime to naive UTC. Naive input is assumed to be UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(pytz.UTC).replace(tzinfo=None)
    return value


def parse_remote_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a remote date or datetime string and truncate it to a UTC date.

    Args:
        value: 'YYYY-MM-DD' or ISO 8601 datetime string

    Returns:
        date object or None if parsing fails
    """
    parsed = parse_remote_datetime(value)
    if parsed is None:
        return None
    return to_utc(parsed).date()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a strict 'YYYY-MM-DD' string."""
    if not value:
        return None

    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (ValueError, TypeError):
        return None


def calculate_duration_hours(start: datetime, end: datetime) -> float:
    """
    Calculate duration in hours between two datetimes.

    Args:
        start: Start datetime
        end: End datetime

    Returns:
        Duration in hours
    """
    if not start or not end:
        return 0.0

    delta = end - start
    return round(delta.total_seconds() / 3600, 2)


def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
    """
    Split a list into chunks of specified size.

    Args:
        lst: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def safe_get(data: Dict, *keys, default=None) -> Any:
    """
    Safely get nested dictionary value.

    Args:
        data: Dictionary to traverse
        *keys: Keys to follow
        default: Default value if key not found

    Returns:
        Value at path or default
    """
    result = data
    for key in keys:
        if isinstance(result, dict):
            result = result.get(key)
        else:
            return default
        if result is None:
            return default
    return result


def sanitize_string(text: Optional[str], max_length: int = None) -> Optional[str]:
    """
    Sanitize string for database storage.

    Args:
        text: Text to sanitize
        max_length: Maximum length (truncate if exceeded)

    Returns:
        Sanitized string
    """
    if text is None:
        return None

    text = str(text).replace('\x00', '')

    if max_length and len(text) > max_length:
        text = text[:max_length - 3] + '...'

    return text


def utc_today() -> date:
    """Current date in UTC."""
    return datetime.now(pytz.UTC).date()


def get_date_range(days: int) -> Tuple[date, date]:
    """
    Get date range for the past N days, ending today (UTC).

    Args:
        days: Number of days to look back

    Returns:
        Tuple of (start_date, end_date)
    """
    end_date = utc_today()
    start_date = end_date - timedelta(days=days)
    return start_date, end_date
