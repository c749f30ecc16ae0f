#!/usr/bin/env python3
"""
Overlap Calculator Module

This module measures how many days of a calendar month an invoice's billing
period covers. Both ends of the billing period are inclusive.
"""

import logging
import datetime
from typing import Dict, Any, List, Optional

from rent_allocation.utils.helpers import InvalidRecordError

# Configure logging
logger = logging.getLogger(__name__)


def _require_date(value: Any, field: str) -> datetime.date:
    """Return value as a date or raise InvalidRecordError."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    raise InvalidRecordError(f"{field} must be a date, got {value!r}", field=field)


def calculate_overlap_days(
    invoice_start: datetime.date,
    invoice_end: datetime.date,
    month: Dict[str, Any]
) -> int:
    """
    Calculate the number of days of a month covered by an invoice period.

    Args:
        invoice_start: First billed day (inclusive)
        invoice_end: Last billed day (inclusive)
        month: Month dictionary from period_calculator

    Returns:
        Number of overlapping days, 0 when the periods do not intersect

    Raises:
        InvalidRecordError: If either invoice bound is not a date
    """
    start_date = _require_date(invoice_start, 'start_date')
    end_date = _require_date(invoice_end, 'end_date')

    month_start = month['start']
    month_end = month['end']

    # Invoice period completely outside of the month
    if end_date < month_start or start_date > month_end:
        return 0

    overlap_start = max(start_date, month_start)
    overlap_end = min(end_date, month_end)

    return max(0, (overlap_end - overlap_start).days + 1)


def calculate_overlap(
    invoice_start: datetime.date,
    invoice_end: datetime.date,
    month: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Calculate the overlap between an invoice period and a month.

    Args:
        invoice_start: First billed day (inclusive)
        invoice_end: Last billed day (inclusive)
        month: Month dictionary from period_calculator

    Returns:
        Dictionary with overlap_days, covers_full_month and month_days
    """
    overlap_days = calculate_overlap_days(invoice_start, invoice_end, month)
    start_date = _require_date(invoice_start, 'start_date')
    end_date = _require_date(invoice_end, 'end_date')

    return {
        'overlap_days': overlap_days,
        'covers_full_month': start_date <= month['start'] and end_date >= month['end'],
        'month_days': month['day_count'],
    }


def invoice_overlaps_month(
    invoice_start: Optional[datetime.date],
    invoice_end: Optional[datetime.date],
    month: Dict[str, Any]
) -> bool:
    """Return True when the invoice period touches the month at all."""
    if invoice_start is None or invoice_end is None:
        return False
    return invoice_start <= month['end'] and invoice_end >= month['start']


def find_overlapping_months(
    invoice_start: Optional[datetime.date],
    invoice_end: Optional[datetime.date],
    months: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Return the months of a window that an invoice period touches, in window order."""
    return [
        month for month in months
        if invoice_overlaps_month(invoice_start, invoice_end, month)
    ]
