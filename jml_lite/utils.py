"""
Utility functions for JML Lite.

Date and validation helpers shared by the services. All datetimes are
timezone-aware UTC; "today" means the current UTC calendar day.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from urllib.parse import urlsplit

from .models import as_utc

Clock = Callable[[], datetime]

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    """Midnight UTC of the day containing ``value``."""
    return as_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def whole_days_between(later: datetime, earlier: datetime) -> int:
    """Number of whole days from ``earlier`` to ``later``, floored."""
    return math.floor((as_utc(later) - as_utc(earlier)).total_seconds() / SECONDS_PER_DAY)


def format_date(value: Optional[datetime], default: str = "Not set") -> str:
    """Format a date the en-GB short way, e.g. '5 Mar 2026'."""
    if value is None:
        return default
    value = as_utc(value)
    return f"{value.day} {value.strftime('%b %Y')}"


def format_timestamp(value: datetime) -> str:
    """Format a timestamp for display, e.g. '5 Mar 2026, 14:05 UTC'."""
    value = as_utc(value)
    return f"{format_date(value)}, {value.strftime('%H:%M')} UTC"


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def validate_webhook_url(url: Optional[str]) -> List[str]:
    """
    Validate a Teams incoming webhook URL.

    Args:
        url: URL to check

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not url or not url.strip():
        errors.append("Webhook URL is required")
        return errors

    try:
        parts = urlsplit(url.strip())
    except ValueError:
        errors.append("Webhook URL is not a valid URL")
        return errors

    if parts.scheme != "https":
        errors.append("Webhook URL must use https")
    if not parts.netloc:
        errors.append("Webhook URL must include a host")

    return errors
