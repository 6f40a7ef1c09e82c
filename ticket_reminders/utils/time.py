"""Time Utilities - UTC timestamps and formatting"""
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (MongoDB hands those back by default)"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def format_duration(delta: timedelta) -> str:
    """
    Format a duration to a human readable string

    Returns:
        e.g. "45m", "2h 30m", "1d 4h"
    """
    minutes = int(delta.total_seconds() // 60)
    if minutes < 0:
        return f"-{format_duration(-delta)}"

    if minutes < 60:
        return f"{minutes}m"

    hours_part = minutes // 60
    remaining_minutes = minutes % 60

    if hours_part < 24:
        if remaining_minutes > 0:
            return f"{hours_part}h {remaining_minutes}m"
        return f"{hours_part}h"

    days = hours_part // 24
    remaining_hours = hours_part % 24

    if remaining_hours > 0:
        return f"{days}d {remaining_hours}h"
    return f"{days}d"


def format_visit_date(dt: datetime) -> str:
    """Short visit date used in agency messages, e.g. '5 Mar 2025'"""
    dt = ensure_utc(dt)
    return f"{dt.day} {dt.strftime('%b %Y')}"
