"""
Date Filter Helpers

Normalizes the report window, builds the source-side filter expressions for
invoice/return headers, and re-checks header dates in memory (line items are
not date-filtered at source).
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional


def parse_date(date_string) -> Optional[datetime]:
    """
    Parse ISO date string to datetime object.

    Args:
        date_string: ISO format date or datetime string

    Returns:
        datetime object or None if parsing fails
    """
    if not date_string or not isinstance(date_string, str):
        return None

    try:
        # Handle ISO format with timezone
        if 'T' in date_string:
            return datetime.fromisoformat(date_string.replace('Z', '+00:00'))
        else:
            return datetime.fromisoformat(date_string.strip())
    except (ValueError, AttributeError):
        return None


def normalize_date(value) -> Optional[str]:
    """
    Reduce a date or datetime string to its YYYY-MM-DD day key.

    Returns:
        Day key, or None if the value is empty or unparseable
    """
    parsed = parse_date(value)
    if parsed is None:
        return None
    return parsed.strftime('%Y-%m-%d')


def normalize_bound(value, name: str) -> Optional[str]:
    """
    Normalize one bound of the report window.

    Args:
        value: Date/datetime string, date object, or None/empty for an open bound
        name: Argument name, used in the error message

    Returns:
        Day key, or None for an open bound

    Raises:
        ValueError: If the value is given but is not a recognisable date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')

    day = normalize_date(value)
    if day is None:
        raise ValueError(f"Invalid {name}: {value!r} (expected YYYY-MM-DD or an ISO datetime)")
    return day


def get_dates_in_range(start_date: str, end_date: str) -> List[str]:
    """
    List every calendar day from start_date to end_date inclusive.

    Example:
        >>> get_dates_in_range('2024-01-30', '2024-02-01')
        ['2024-01-30', '2024-01-31', '2024-02-01']
    """
    current = datetime.strptime(start_date, '%Y-%m-%d')
    end = datetime.strptime(end_date, '%Y-%m-%d')

    dates = []
    while current <= end:
        dates.append(current.strftime('%Y-%m-%d'))
        current += timedelta(days=1)
    return dates


def between_filter(field_name: str, date_from: Optional[str], date_to: Optional[str]) -> Dict[str, str]:
    """
    Source-side filter restricting a header collection to the report window.

    Only applied when both bounds are given; the upper bound covers the whole day.

    Example:
        >>> between_filter('invoice_date', '2024-01-01', '2024-01-31')
        {'filter[invoice_date][_between]': '[2024-01-01,2024-01-31T23:59:59]'}
    """
    if not (date_from and date_to):
        return {}
    return {f"filter[{field_name}][_between]": f"[{date_from},{date_to}T23:59:59]"}


def within_range(day: str, date_from: Optional[str], date_to: Optional[str]) -> bool:
    """Check a YYYY-MM-DD day key against optional inclusive bounds"""
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True
