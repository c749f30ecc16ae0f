#!/usr/bin/env python3
"""
Cap Enforcement Module

This module enforces the monthly rent cap on an employee's aggregated
allocations. Overlapping invoices (for example a correction invoice billed
next to the original) can push a month above the employee's rent even though
each invoice is clamped on its own. The excess is removed from such months
and moved into months of the window that still have room below the cap, so
the employee's grand total keeps reconciling with what was billed.

When the window has less room than the excess, the remainder is reported as
unresolved instead of being dropped.
"""

import logging
from copy import deepcopy
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple, Union

from rent_allocation.settings_loader import DEFAULT_RENT
from rent_allocation.calculations.proration import get_effective_rent

# Configure logging
logger = logging.getLogger(__name__)

# Amounts within this distance of the cap are treated as at the cap
CAP_TOLERANCE = Decimal('0.000001')

REDISTRIBUTED_INVOICE_ID = 'redistributed'


def _prepare_month(allocation: Dict[str, Any]) -> Dict[str, Any]:
    """Copy a month allocation and make sure the cap markers exist."""
    month = deepcopy(allocation)
    month.setdefault('original_amount', month.get('amount', Decimal('0')))
    month.setdefault('was_capped', False)
    month.setdefault('excess_amount', Decimal('0'))
    month.setdefault('redistributed_amount', Decimal('0'))
    month.setdefault('line_items', [])
    return month


def scale_line_items(line_items: List[Dict[str, Any]], target_total: Decimal) -> List[Dict[str, Any]]:
    """
    Scale line items proportionally so they sum to a target total.

    The last line item absorbs the rounding remainder.

    Args:
        line_items: Line items of a month
        target_total: Total the scaled line items must add up to

    Returns:
        New list of line items
    """
    scaled = deepcopy(line_items)
    current_total = sum((item['amount'] for item in scaled), Decimal('0'))

    if not scaled or current_total <= 0:
        return scaled

    factor = target_total / current_total
    running_total = Decimal('0')

    for item in scaled[:-1]:
        item['amount'] = item['amount'] * factor
        running_total += item['amount']

    scaled[-1]['amount'] = target_total - running_total

    return scaled


def distribute_excess(total_excess: Decimal, donors: List[Tuple[str, Decimal]]) -> Dict[str, Decimal]:
    """
    Split an excess across donor months in proportion to their available space.

    No donor receives more than its space; when the combined space is smaller
    than the excess, every donor is filled to the cap.

    Args:
        total_excess: Amount to place
        donors: List of (month_key, available_space) in window order

    Returns:
        Dictionary mapping month keys to the share they receive
    """
    total_space = sum((space for _, space in donors), Decimal('0'))

    if total_excess <= 0 or total_space <= 0:
        return {}

    if total_space <= total_excess:
        return {key: space for key, space in donors}

    shares = {}
    running_total = Decimal('0')

    for key, space in donors[:-1]:
        share = total_excess * space / total_space
        shares[key] = share
        running_total += share

    last_key = donors[-1][0]
    shares[last_key] = total_excess - running_total

    return shares


def build_redistribution_line_item(
    amount: Decimal,
    source_months: List[str],
    is_paid: bool
) -> Dict[str, Any]:
    """
    Create the synthetic line item recording rent moved in from capped months.

    Args:
        amount: Amount received by the month
        source_months: Keys of the capped months the amount came from
        is_paid: Whether the source invoices were paid

    Returns:
        Line item dictionary
    """
    month_labels = ', '.join(f"{key.split('-')[1]}月" for key in source_months)

    return {
        'invoice_id': REDISTRIBUTED_INVOICE_ID,
        'invoice_number': f"重新分配 ({month_labels})",
        'amount': amount,
        'is_paid': is_paid,
        'is_issued': True,
        'status': 'paid' if is_paid else 'pending',
        'invoice_start': None,
        'invoice_end': None,
        'invoice_amount': None,
        'receipt_urls': [],
        'matched_by': None,
        'is_redistribution': True,
        'source_months': list(source_months),
    }


def cap_and_redistribute(
    monthly_allocations: Dict[str, Dict[str, Any]],
    employee_monthly_rent: Optional[Union[Decimal, int, str]],
    default_rent: Decimal = DEFAULT_RENT
) -> Dict[str, Any]:
    """
    Cap every month at the employee's rent and redistribute the excess.

    1. Months above the cap are reduced to the cap; their line items are
       scaled down proportionally and the removed amount is their excess.
    2. Months with a positive amount below the cap that were never capped
       are donors; their space is cap - amount.
    3. The combined excess is placed into the donors in proportion to their
       space, as one synthetic line item per donor.

    The input is not modified and running the pass again on its output
    changes nothing.

    Args:
        monthly_allocations: Month key -> {'amount', 'original_amount', 'line_items'}
        employee_monthly_rent: Employee's monthly rent
        default_rent: Rent substituted when none is on file

    Returns:
        Dictionary with the capped 'months', 'rent_cap', 'total_excess',
        'redistributed_total', 'unresolved_excess', 'capped_months' and
        'donor_months'
    """
    rent_cap = get_effective_rent(employee_monthly_rent, default_rent)

    months = {}
    total_excess = Decimal('0')
    capped_months = []
    donors = []

    for key, allocation in monthly_allocations.items():
        month = _prepare_month(allocation)
        amount = month['amount']

        if amount > 0 and amount - rent_cap > CAP_TOLERANCE:
            excess = amount - rent_cap
            month['line_items'] = scale_line_items(month['line_items'], rent_cap)
            month['amount'] = rent_cap
            month['was_capped'] = True
            month['excess_amount'] += excess
            total_excess += excess
            capped_months.append(key)
            logger.debug(f"Month {key} capped from {amount} to {rent_cap}, excess {excess}")
        elif amount > 0 and not month['was_capped']:
            space = rent_cap - amount
            if space > CAP_TOLERANCE:
                donors.append((key, space))

        months[key] = month

    redistributed_total = Decimal('0')
    donor_months = []

    if total_excess > 0:
        source_paid = all(
            item.get('is_paid')
            for key in capped_months
            for item in months[key]['line_items']
        )
        shares = distribute_excess(total_excess, donors)

        for key, share in shares.items():
            if share <= 0:
                continue
            month = months[key]
            month['amount'] += share
            month['redistributed_amount'] += share
            month['line_items'].append(build_redistribution_line_item(share, capped_months, source_paid))
            redistributed_total += share
            donor_months.append(key)

    unresolved_excess = total_excess - redistributed_total

    if total_excess > 0:
        logger.info(
            f"Capped {len(capped_months)} months at {rent_cap}: excess {total_excess}, "
            f"redistributed {redistributed_total} into {len(donor_months)} months"
        )

    if unresolved_excess > CAP_TOLERANCE:
        logger.warning(
            f"Excess of {unresolved_excess} from months {', '.join(capped_months)} "
            f"could not be redistributed: not enough room below the cap of {rent_cap}"
        )

    return {
        'months': months,
        'rent_cap': rent_cap,
        'total_excess': total_excess,
        'redistributed_total': redistributed_total,
        'unresolved_excess': unresolved_excess,
        'capped_months': capped_months,
        'donor_months': donor_months,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    example = {
        '2025-08': {'amount': Decimal('1000'), 'original_amount': Decimal('1000'), 'line_items': [
            {'invoice_id': 'a', 'invoice_number': 'INV-A', 'amount': Decimal('1000'), 'is_paid': True}
        ]},
        '2025-09': {'amount': Decimal('7000'), 'original_amount': Decimal('7000'), 'line_items': [
            {'invoice_id': 'b', 'invoice_number': 'INV-B', 'amount': Decimal('3500'), 'is_paid': True},
            {'invoice_id': 'c', 'invoice_number': 'INV-C', 'amount': Decimal('3500'), 'is_paid': False}
        ]},
    }

    result = cap_and_redistribute(example, Decimal('3500'))
    for month_key, month in result['months'].items():
        print(f"{month_key}: {month['original_amount']} -> {month['amount']}")
    print(f"Unresolved excess: {result['unresolved_excess']}")
