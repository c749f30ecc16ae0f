#!/usr/bin/env python3
"""
Proration Module

This module converts an invoice's billing period into the rent it
contributes to a single calendar month. The contribution is derived from the
employee's monthly rent and the number of days covered, never from the
invoice's own amount: a full month costs one month's rent no matter how the
invoice was priced.
"""

import logging
import datetime
from decimal import Decimal
from typing import Dict, Any, Optional, Union

from rent_allocation.settings_loader import DEFAULT_RENT
from rent_allocation.overlap_calculator import calculate_overlap

# Configure logging
logger = logging.getLogger(__name__)


def get_effective_rent(
    employee_monthly_rent: Optional[Union[Decimal, int, str]],
    default_rent: Decimal = DEFAULT_RENT
) -> Decimal:
    """
    Get the rent used for proration.

    Args:
        employee_monthly_rent: Employee's monthly rent (may be None or zero)
        default_rent: Rent substituted when none is on file

    Returns:
        The employee's rent if positive, otherwise the default rent
    """
    if employee_monthly_rent is None or employee_monthly_rent == "":
        return default_rent

    rent = Decimal(str(employee_monthly_rent))

    if rent <= 0:
        return default_rent

    return rent


def prorate(
    invoice_start: datetime.date,
    invoice_end: datetime.date,
    month: Dict[str, Any],
    employee_monthly_rent: Optional[Union[Decimal, int, str]],
    default_rent: Decimal = DEFAULT_RENT
) -> Decimal:
    """
    Calculate the rent an invoice period contributes to a month.

    Args:
        invoice_start: First billed day (inclusive)
        invoice_end: Last billed day (inclusive)
        month: Month dictionary from period_calculator
        employee_monthly_rent: Employee's monthly rent
        default_rent: Rent substituted when none is on file

    Returns:
        0 when the periods do not overlap, the full rent when the invoice
        covers the whole month, otherwise overlap_days / month_days of the
        rent (never more than the rent)
    """
    overlap = calculate_overlap(invoice_start, invoice_end, month)

    if overlap['overlap_days'] <= 0:
        return Decimal('0')

    rent = get_effective_rent(employee_monthly_rent, default_rent)

    if overlap['covers_full_month']:
        return rent

    amount = Decimal(overlap['overlap_days']) / Decimal(overlap['month_days']) * rent

    return min(amount, rent)
