#!/usr/bin/env python3
"""
Deposit Filter Module

Security deposits are billed through the same invoice collection as rent but
are not revenue. This module recognizes them by keywords in the invoice's
descriptive text so they can be kept out of every rent figure.
"""

import logging
from typing import Dict, Any, List, Optional, Iterable

from rent_allocation.settings_loader import DEPOSIT_KEYWORDS

# Configure logging
logger = logging.getLogger(__name__)

# Invoice fields scanned for deposit keywords
DEPOSIT_TEXT_FIELDS = ('invoice_number', 'description', 'type', 'notes')

DEPOSIT_STATUS = 'deposit'


def is_deposit(invoice: Dict[str, Any], keywords: Optional[Iterable[str]] = None) -> bool:
    """
    Check whether an invoice is a security deposit.

    Args:
        invoice: Invoice record
        keywords: Keywords to look for (defaults to DEPOSIT_KEYWORDS)

    Returns:
        True if any descriptive field contains any keyword (case-insensitive)
    """
    if keywords is None:
        keywords = DEPOSIT_KEYWORDS

    lowered_keywords = [str(keyword).lower() for keyword in keywords if keyword]

    for field in DEPOSIT_TEXT_FIELDS:
        value = invoice.get(field)
        if not value:
            continue
        text = str(value).lower()
        if any(keyword in text for keyword in lowered_keywords):
            return True

    return False


def is_excluded_from_rent(invoice: Dict[str, Any], keywords: Optional[Iterable[str]] = None) -> bool:
    """
    Check whether an invoice must be left out of rent figures.

    An invoice is excluded when its text marks it as a deposit or when its
    status is 'deposit'.
    """
    if invoice.get('status') == DEPOSIT_STATUS:
        return True
    return is_deposit(invoice, keywords)


def filter_deposits(
    invoices: List[Dict[str, Any]],
    keywords: Optional[Iterable[str]] = None
) -> List[Dict[str, Any]]:
    """
    Remove deposit invoices from a list.

    Args:
        invoices: Invoice records
        keywords: Keywords to look for (defaults to DEPOSIT_KEYWORDS)

    Returns:
        New list containing only the non-deposit invoices, in input order
    """
    kept = []
    excluded = []

    for invoice in invoices:
        if is_excluded_from_rent(invoice, keywords):
            excluded.append(invoice.get('invoice_number') or invoice.get('id'))
        else:
            kept.append(invoice)

    if excluded:
        logger.debug(f"Excluded {len(excluded)} deposit invoices: {', '.join(str(n) for n in excluded)}")

    return kept
