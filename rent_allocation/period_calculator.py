#!/usr/bin/env python3
"""
Period Calculator Module

This module builds the calendar months of the reporting window. Each month is
a dictionary with its key (YYYY-MM), display label, first and last day and
day count. The window is anchored on a reference date, normally today.
"""

import logging
import datetime
from typing import List, Optional, Dict, Any, Union
from dateutil.relativedelta import relativedelta

# Configure logging
logger = logging.getLogger(__name__)


def month_key(year: int, month: int) -> str:
    """Return the YYYY-MM key of a month."""
    return f"{year:04d}-{month:02d}"


def parse_month_key(key: str) -> datetime.date:
    """
    Parse a month key in YYYY-MM format.

    Args:
        key: Month key string

    Returns:
        datetime.date of the first day of the month

    Raises:
        ValueError: If the key is not a valid YYYY-MM month
    """
    if not isinstance(key, str) or len(key) != 7 or key[4] != '-':
        raise ValueError(f"Invalid month key (expected YYYY-MM): {key!r}")

    try:
        year = int(key[:4])
        month = int(key[5:7])
        return datetime.date(year, month, 1)
    except ValueError:
        raise ValueError(f"Invalid month key (expected YYYY-MM): {key!r}")


def month_label(year: int, month: int) -> str:
    """Return the short display label of a month, e.g. 8月-2025."""
    return f"{month}月-{year}"


def build_month(year: int, month: int) -> Dict[str, Any]:
    """
    Build the month dictionary for a calendar month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)

    Returns:
        Dictionary with key, label, year, month, start, end and day_count
    """
    start = datetime.date(year, month, 1)
    end = start + relativedelta(months=1) - datetime.timedelta(days=1)

    return {
        'key': month_key(year, month),
        'label': month_label(year, month),
        'year': year,
        'month': month,
        'start': start,
        'end': end,
        'day_count': end.day,
    }


def get_month_info(key: str) -> Dict[str, Any]:
    """
    Get the month dictionary for a YYYY-MM key.

    Args:
        key: Month key in YYYY-MM format

    Returns:
        Month dictionary

    Raises:
        ValueError: If the key is malformed
    """
    first_day = parse_month_key(key)
    return build_month(first_day.year, first_day.month)


def get_month_for_date(value: datetime.date) -> Dict[str, Any]:
    """Return the month dictionary containing a date."""
    return build_month(value.year, value.month)


def generate_months(
    reference_date: Optional[datetime.date] = None,
    months_before: int = 3,
    months_after: int = 8
) -> List[Dict[str, Any]]:
    """
    Generate the reporting window around a reference date.

    Args:
        reference_date: Date whose month anchors the window (defaults to today)
        months_before: Number of months before the reference month
        months_after: Number of months after the reference month

    Returns:
        List of months_before + months_after + 1 month dictionaries in
        chronological order
    """
    if months_before < 0 or months_after < 0:
        raise ValueError(f"Month window bounds must not be negative: {months_before}, {months_after}")

    if reference_date is None:
        reference_date = datetime.date.today()
    elif isinstance(reference_date, datetime.datetime):
        reference_date = reference_date.date()

    anchor = datetime.date(reference_date.year, reference_date.month, 1)

    months = []
    for offset in range(-months_before, months_after + 1):
        current = anchor + relativedelta(months=offset)
        months.append(build_month(current.year, current.month))

    logger.info(f"Generated {len(months)} months from {months[0]['key']} to {months[-1]['key']}")
    return months


def resolve_month(month: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Accept either a month dictionary or a YYYY-MM key and return the dictionary."""
    if isinstance(month, dict):
        return month
    return get_month_info(month)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    window = generate_months(datetime.date(2025, 8, 15))
    for item in window:
        print(f"{item['key']} ({item['label']}): {item['start']} - {item['end']}, {item['day_count']} days")
