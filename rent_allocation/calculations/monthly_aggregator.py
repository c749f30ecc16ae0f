#!/usr/bin/env python3
"""
Monthly Aggregator Module

This module accumulates one employee's eligible invoices into per-month rent
totals. Each month keeps the line items that make up its total so reports
can drill down to the invoices behind a figure.
"""

import logging
from decimal import Decimal
from typing import Dict, Any, List, Optional

from rent_allocation.settings_loader import get_default_rent, get_deposit_keywords
from rent_allocation.deposit_filter import is_excluded_from_rent
from rent_allocation.employee_matcher import find_employee_invoices, get_employee_name
from rent_allocation.overlap_calculator import find_overlapping_months
from rent_allocation.calculations.proration import prorate

# Configure logging
logger = logging.getLogger(__name__)


def create_line_item(invoice: Dict[str, Any], amount: Decimal, matched_by: Optional[str] = None) -> Dict[str, Any]:
    """
    Create the line item recording an invoice's contribution to a month.

    Args:
        invoice: Invoice record
        amount: Prorated contribution to the month
        matched_by: How the invoice was linked to the employee ('id' or 'name')

    Returns:
        Line item dictionary
    """
    return {
        'invoice_id': invoice.get('id'),
        'invoice_number': invoice.get('invoice_number'),
        'amount': amount,
        'is_paid': bool(invoice.get('is_paid')) or invoice.get('status') == 'paid',
        'is_issued': invoice.get('is_issued'),
        'status': invoice.get('status'),
        'invoice_start': invoice.get('start_date'),
        'invoice_end': invoice.get('end_date'),
        'invoice_amount': invoice.get('amount'),
        'receipt_urls': list(invoice.get('receipt_urls') or []),
        'matched_by': matched_by,
        'is_redistribution': False,
    }


def create_empty_month() -> Dict[str, Any]:
    """Create the allocation of a month without contributions."""
    return {
        'amount': Decimal('0'),
        'original_amount': Decimal('0'),
        'line_items': [],
    }


def get_eligible_invoices(
    employee: Dict[str, Any],
    invoices: List[Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """
    Select the invoices that count toward an employee's rent.

    Deposits, invoices without both dates, invoices explicitly marked as not
    issued and invoices of other employees are left out.

    Args:
        employee: Employee record
        invoices: Invoice records
        settings: Settings dictionary

    Returns:
        List of dictionaries with 'invoice' and 'matched_by'
    """
    keywords = get_deposit_keywords(settings)
    eligible = []
    skipped_dates = 0
    skipped_deposits = 0
    skipped_unissued = 0

    for match in find_employee_invoices(employee, invoices):
        invoice = match['invoice']

        if is_excluded_from_rent(invoice, keywords):
            skipped_deposits += 1
            continue

        if invoice.get('start_date') is None or invoice.get('end_date') is None:
            logger.debug(f"Skipping invoice {invoice.get('invoice_number')}: missing start or end date")
            skipped_dates += 1
            continue

        if invoice.get('is_issued') is False:
            skipped_unissued += 1
            continue

        eligible.append(match)

    logger.debug(
        f"Employee {employee.get('id')}: {len(eligible)} eligible invoices "
        f"({skipped_deposits} deposits, {skipped_dates} without dates, {skipped_unissued} not issued skipped)"
    )

    return eligible


def aggregate(
    employee: Dict[str, Any],
    invoices: List[Dict[str, Any]],
    months: List[Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None,
    eligible: Optional[List[Dict[str, Any]]] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Aggregate an employee's invoices into per-month rent totals.

    Args:
        employee: Employee record
        invoices: Invoice records (all employees; filtered here)
        months: Month dictionaries of the reporting window
        settings: Settings dictionary
        eligible: Result of get_eligible_invoices when the caller already has it

    Returns:
        Dictionary mapping every month key of the window to
        {'amount', 'original_amount', 'line_items'}
    """
    default_rent = get_default_rent(settings)
    monthly_rent = employee.get('monthly_rent')

    allocations = {month['key']: create_empty_month() for month in months}

    if eligible is None:
        eligible = get_eligible_invoices(employee, invoices, settings)

    for match in eligible:
        invoice = match['invoice']

        for month in find_overlapping_months(invoice['start_date'], invoice['end_date'], months):
            amount = prorate(invoice['start_date'], invoice['end_date'], month, monthly_rent, default_rent)
            if amount <= 0:
                continue

            allocation = allocations[month['key']]
            allocation['amount'] += amount
            allocation['line_items'].append(create_line_item(invoice, amount, match['matched_by']))

    for allocation in allocations.values():
        allocation['original_amount'] = allocation['amount']

    active_months = sum(1 for allocation in allocations.values() if allocation['line_items'])
    logger.debug(
        f"Aggregated employee {employee.get('id')} ({get_employee_name(employee)}): "
        f"{active_months} of {len(months)} months with rent"
    )

    return allocations
