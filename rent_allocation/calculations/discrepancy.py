#!/usr/bin/env python3
"""
Discrepancy Module

This module compares, for one month, the rent the housed employees are
contracted to pay with the amounts on the invoices covering that month.
Each employee is classified as a match, as missing an invoice or as billed a
different amount, so billing gaps can be followed up.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Optional

from rent_allocation.settings_loader import get_deposit_keywords, get_mismatch_tolerance
from rent_allocation.deposit_filter import filter_deposits
from rent_allocation.employee_filters import get_housed_employees
from rent_allocation.employee_matcher import match_invoice_to_employee, get_employee_name
from rent_allocation.overlap_calculator import invoice_overlaps_month

# Configure logging
logger = logging.getLogger(__name__)

REASON_MATCH = 'Match'
REASON_NO_INVOICE = 'No Invoice'
REASON_AMOUNT_MISMATCH = 'Amount Mismatch'

TOP_ISSUES_LIMIT = 20
UNKNOWN_COMPANY = 'Unknown'
PERCENT_QUANTIZE = Decimal('0.01')


def classify_employee(
    theoretical_rent: Decimal,
    invoice_amount: Decimal,
    invoice_count: int,
    tolerance: Decimal = Decimal('0.01')
) -> str:
    """
    Classify an employee's billing for a month.

    Args:
        theoretical_rent: Contracted monthly rent
        invoice_amount: Sum of the employee's invoices covering the month
        invoice_count: Number of those invoices
        tolerance: Largest difference still treated as a match

    Returns:
        'No Invoice', 'Amount Mismatch' or 'Match'
    """
    if invoice_count == 0:
        return REASON_NO_INVOICE

    if abs(invoice_amount - theoretical_rent) > tolerance:
        return REASON_AMOUNT_MISMATCH

    return REASON_MATCH


def get_month_invoices(
    invoices: List[Dict[str, Any]],
    month: Dict[str, Any],
    settings: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """
    Select the rent invoices covering a month.

    Deposits, invoices without dates and invoices explicitly marked as not
    issued are left out.
    """
    candidates = filter_deposits(invoices, get_deposit_keywords(settings))

    return [
        invoice for invoice in candidates
        if invoice.get('is_issued') is not False
        and invoice_overlaps_month(invoice.get('start_date'), invoice.get('end_date'), month)
    ]


def calculate_percentage(part: Decimal, whole: Decimal) -> Decimal:
    """Return part / whole * 100 rounded to 2 places, 0 when whole is 0."""
    if whole == 0:
        return Decimal('0.00')
    return (part / whole * Decimal('100')).quantize(PERCENT_QUANTIZE, rounding=ROUND_HALF_UP)


def summarize_discrepancy_by_company(rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Group discrepancy rows by company.

    Args:
        rows: Employee rows of a discrepancy report

    Returns:
        Dictionary mapping company names (sorted) to count, theoretical,
        invoiced and discrepancy
    """
    breakdown = {}

    for row in rows:
        company = row['company'] or UNKNOWN_COMPANY
        totals = breakdown.setdefault(company, {
            'count': 0,
            'theoretical': Decimal('0'),
            'invoiced': Decimal('0'),
            'discrepancy': Decimal('0'),
        })
        totals['count'] += 1
        totals['theoretical'] += row['theoretical_rent']
        totals['invoiced'] += row['invoice_amount']
        totals['discrepancy'] += row['difference']

    return {company: breakdown[company] for company in sorted(breakdown)}


def calculate_discrepancy(
    employees: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    month: Dict[str, Any],
    settings: Optional[Dict[str, Any]] = None,
    engine_total: Optional[Decimal] = None
) -> Dict[str, Any]:
    """
    Compare contracted rent with invoiced amounts for a month.

    Differences are contracted rent minus invoiced amount, so a shortfall
    in billing is positive. engine_difference is the invoiced amount minus
    the engine total.

    Args:
        employees: Employee records (only rent payers are checked)
        invoices: Invoice records
        month: Month dictionary to check
        settings: Settings dictionary
        engine_total: Month total computed by the allocation engine, reported
            next to the invoiced amount when given

    Returns:
        Dictionary with theoretical_rent, invoiced_rent, difference,
        difference_percent, engine_total, engine_difference, statistics,
        company_breakdown, employees (one row per rent payer) and top_issues
    """
    tolerance = get_mismatch_tolerance(settings)
    housed = get_housed_employees(employees, settings)
    month_invoices = get_month_invoices(invoices, month, settings)

    invoiced_rent = sum((invoice.get('amount') or Decimal('0') for invoice in month_invoices), Decimal('0'))
    theoretical_rent = Decimal('0')

    rows = []
    statistics = {'total_employees': len(housed), 'matches': 0, 'no_invoices': 0, 'mismatches': 0}

    for employee in housed:
        rent = employee.get('monthly_rent') or Decimal('0')
        theoretical_rent += rent

        employee_invoices = [
            invoice for invoice in month_invoices
            if match_invoice_to_employee(invoice, employee) is not None
        ]
        invoice_amount = sum((invoice.get('amount') or Decimal('0') for invoice in employee_invoices), Decimal('0'))
        reason = classify_employee(rent, invoice_amount, len(employee_invoices), tolerance)

        if reason == REASON_MATCH:
            statistics['matches'] += 1
        elif reason == REASON_NO_INVOICE:
            statistics['no_invoices'] += 1
        else:
            statistics['mismatches'] += 1

        rows.append({
            'employee_id': employee.get('id'),
            'name': get_employee_name(employee),
            'company': employee.get('company') or '',
            'contract': employee.get('contract_number') or '',
            'theoretical_rent': rent,
            'invoice_amount': invoice_amount,
            'difference': rent - invoice_amount,
            'reason': reason,
            'invoice_count': len(employee_invoices),
            'invoice_numbers': [invoice.get('invoice_number') for invoice in employee_invoices],
        })

    # Positive when less was invoiced than the housed employees owe
    difference = theoretical_rent - invoiced_rent

    issues = [row for row in rows if row['reason'] != REASON_MATCH]
    top_issues = sorted(issues, key=lambda row: abs(row['difference']), reverse=True)[:TOP_ISSUES_LIMIT]

    logger.info(
        f"Discrepancy for {month['key']}: theoretical {theoretical_rent}, invoiced {invoiced_rent}, "
        f"{statistics['matches']} matches, {statistics['no_invoices']} without invoice, "
        f"{statistics['mismatches']} mismatches"
    )

    return {
        'month': month['key'],
        'theoretical_rent': theoretical_rent,
        'invoiced_rent': invoiced_rent,
        'difference': difference,
        'difference_percent': calculate_percentage(difference, theoretical_rent),
        'engine_total': engine_total,
        'engine_difference': invoiced_rent - engine_total if engine_total is not None else None,
        'statistics': statistics,
        'company_breakdown': summarize_discrepancy_by_company(rows),
        'employees': rows,
        'top_issues': top_issues,
    }
