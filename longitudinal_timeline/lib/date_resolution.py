"""
Date Resolution

Resolves Canonical Record timestamps to concrete datetimes. Timestamps arrive
either as absolute dates (ISO 8601 and a handful of common export formats) or
as relative day offsets from the case baseline ("day_14", "Day 0").

Resolved datetimes are naive; timezone-aware inputs are converted to UTC first.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .exception_handling import MalformedDateError, MissingBaselineError


RELATIVE_OFFSET_PATTERN = re.compile(r"^\s*day[\s_-]*(-?\d+)\s*$", re.IGNORECASE)

DATE_FORMATS = [
    '%Y-%m-%d',
    '%Y/%m/%d',
    '%m/%d/%Y',
    '%Y%m%d',
    '%d-%b-%Y',
    '%b %d, %Y',
    '%B %d, %Y',
    '%Y-%m-%d %H:%M:%S',
]


def is_relative_offset(value: Any) -> bool:
    return isinstance(value, str) and RELATIVE_OFFSET_PATTERN.match(value) is not None


def parse_date(value: Any, field_name: str) -> datetime:
    """
    Parse an absolute timestamp.

    Args:
        value: datetime, date, or string timestamp
        field_name: Record field the value came from (named in the error)

    Returns:
        Naive datetime

    Raises:
        MalformedDateError: if no recognized format matches
    """
    if isinstance(value, datetime):
        return _to_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        raise MalformedDateError(field_name, value)

    text = value.strip()
    iso_text = text[:-1] + '+00:00' if text.endswith('Z') else text
    try:
        return _to_naive(datetime.fromisoformat(iso_text))
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    raise MalformedDateError(field_name, value)


def try_parse_date(value: Any) -> Optional[datetime]:
    """Parse an absolute timestamp, returning None instead of raising."""
    if value is None or is_relative_offset(value):
        return None
    try:
        return parse_date(value, 'value')
    except MalformedDateError:
        return None


def resolve_date(value: Any, field_name: str, baseline: Optional[datetime]) -> datetime:
    """
    Resolve an absolute or relative timestamp.

    Raises:
        MissingBaselineError: relative offset with no baseline
        MalformedDateError: unparseable absolute timestamp
    """
    if is_relative_offset(value):
        if baseline is None:
            raise MissingBaselineError(field_name, value)
        offset_days = int(RELATIVE_OFFSET_PATTERN.match(value).group(1))
        return baseline + timedelta(days=offset_days)
    return parse_date(value, field_name)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from earlier to later, truncated toward zero."""
    return int((later - earlier).total_seconds() / 86400)


def format_date(value: Optional[datetime]) -> Optional[str]:
    """ISO date string, with the time part only when it is not midnight."""
    if value is None:
        return None
    if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
        return value.date().isoformat()
    return value.isoformat()


def _to_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
