#!/usr/bin/env python3
"""
Payment Tracker Module

This module derives the collection figures shown for the current month and
compares amounts between months.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Optional

# Configure logging
logger = logging.getLogger(__name__)

PCT_QUANTIZE = Decimal('0.01')


def get_current_month_metrics(month_summary: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Get the rent collection metrics of a month from its summary.

    Args:
        month_summary: Month summary from summarize_months (None for a month
            outside the window)

    Returns:
        Dictionary with total_receivable_rent, invoiced_rent, received_rent,
        not_yet_received_rent and collection_rate (percent, 2 places)
    """
    if not month_summary:
        logger.warning("No summary for the requested month, reporting zero rent")
        month_summary = {}

    total = month_summary.get('total', Decimal('0'))
    paid = month_summary.get('paid', Decimal('0'))
    unpaid = month_summary.get('unpaid', Decimal('0'))

    if total > 0:
        collection_rate = (paid / total * Decimal('100')).quantize(PCT_QUANTIZE, rounding=ROUND_HALF_UP)
    else:
        collection_rate = Decimal('0.00')

    return {
        'total_receivable_rent': total,
        'invoiced_rent': total,
        'received_rent': paid,
        'not_yet_received_rent': unpaid,
        'collection_rate': collection_rate,
    }


def calculate_percentage_change(old_amount: Decimal, new_amount: Decimal) -> Dict[str, Any]:
    """
    Calculate percentage change between old and new amounts.

    Args:
        old_amount: Old amount
        new_amount: New amount

    Returns:
        Dictionary with percentage change information
    """
    difference = new_amount - old_amount

    if old_amount == Decimal('0'):
        if new_amount == Decimal('0'):
            percentage_change = Decimal('0')
            change_type = "no_change"
        else:
            percentage_change = Decimal('100')
            change_type = "first_billing"
    else:
        percentage_change = (difference / old_amount * Decimal('100')).quantize(
            PCT_QUANTIZE, rounding=ROUND_HALF_UP
        )

        if percentage_change > Decimal('0'):
            change_type = "increase"
        elif percentage_change < Decimal('0'):
            change_type = "decrease"
        else:
            change_type = "no_change"

    # Flag large changes (20% or more)
    is_significant = abs(percentage_change) >= Decimal('20')

    return {
        "difference": difference,
        "percentage_change": percentage_change,
        "change_type": change_type,
        "is_significant": is_significant
    }


def get_month_over_month_changes(month_summaries: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Compare each month's total with the previous month of the window.

    Args:
        month_summaries: Month summaries in window order

    Returns:
        List of dictionaries with month, previous_month and the fields of
        calculate_percentage_change, one per month after the first
    """
    changes = []
    keys = list(month_summaries)

    for previous_key, key in zip(keys, keys[1:]):
        change = calculate_percentage_change(
            month_summaries[previous_key]['total'],
            month_summaries[key]['total']
        )
        change['month'] = key
        change['previous_month'] = previous_key
        changes.append(change)

        if change['is_significant']:
            logger.info(f"Rent for {key} changed {change['percentage_change']}% from {previous_key}")

    return changes
