#!/usr/bin/env python3
"""
Summaries Module

This module rolls the finalized per-employee allocations up into month and
company totals, split into paid and unpaid rent.
"""

import logging
from decimal import Decimal
from typing import Dict, Any, List, Optional

from rent_allocation.calculations.discrepancy import calculate_discrepancy

# Configure logging
logger = logging.getLogger(__name__)

NO_COMPANY = 'N/A'


def create_empty_summary() -> Dict[str, Any]:
    """Create a month summary without any rent."""
    return {
        'total': Decimal('0'),
        'paid': Decimal('0'),
        'unpaid': Decimal('0'),
        'paid_count': 0,
        'unpaid_count': 0,
        'employee_count': 0,
        'line_item_count': 0,
    }


def summarize_months(
    employee_allocations: List[Dict[str, Any]],
    months: List[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """
    Summarize finalized allocations per month.

    Args:
        employee_allocations: Per-employee results, each with a 'months'
            dictionary of finalized month allocations
        months: Month dictionaries of the reporting window

    Returns:
        Dictionary mapping month keys to {'total', 'paid', 'unpaid',
        'paid_count', 'unpaid_count', 'employee_count', 'line_item_count'}
    """
    summaries = {month['key']: create_empty_summary() for month in months}

    for result in employee_allocations:
        for key, summary in summaries.items():
            allocation = result.get('months', {}).get(key)
            if not allocation:
                continue

            summary['total'] += allocation.get('amount', Decimal('0'))

            line_items = allocation.get('line_items', [])
            if line_items:
                summary['employee_count'] += 1

            for item in line_items:
                summary['line_item_count'] += 1
                if item.get('is_paid'):
                    summary['paid'] += item['amount']
                    summary['paid_count'] += 1
                else:
                    summary['unpaid'] += item['amount']
                    summary['unpaid_count'] += 1

    return summaries


def summarize_companies(
    employee_allocations: List[Dict[str, Any]],
    months: List[Dict[str, Any]]
) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """
    Summarize finalized allocations per company and month.

    Args:
        employee_allocations: Per-employee results with an 'employee' summary
        months: Month dictionaries of the reporting window

    Returns:
        Dictionary mapping company names to month summaries, companies in
        alphabetical order
    """
    by_company = {}

    for result in employee_allocations:
        company = (result.get('employee') or {}).get('company') or NO_COMPANY
        by_company.setdefault(company, []).append(result)

    return {
        company: summarize_months(by_company[company], months)
        for company in sorted(by_company)
    }


def get_window_totals(month_summaries: Dict[str, Dict[str, Any]]) -> Dict[str, Decimal]:
    """Add up total, paid and unpaid rent across every month of the window."""
    totals = {'total': Decimal('0'), 'paid': Decimal('0'), 'unpaid': Decimal('0')}

    for summary in month_summaries.values():
        for field in totals:
            totals[field] += summary[field]

    return totals


def summarize(
    per_employee_allocations: List[Dict[str, Any]],
    months: List[Dict[str, Any]],
    employees: Optional[List[Dict[str, Any]]] = None,
    invoices: Optional[List[Dict[str, Any]]] = None,
    discrepancy_month: Optional[Dict[str, Any]] = None,
    settings: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build the month, company and discrepancy summaries of a report.

    Args:
        per_employee_allocations: Per-employee finalized results
        months: Month dictionaries of the reporting window
        employees: Employee records for the discrepancy check
        invoices: Invoice records for the discrepancy check
        discrepancy_month: Month to check; the check is skipped without it
        settings: Settings dictionary

    Returns:
        Dictionary with 'month_summaries', 'company_breakdown', 'totals' and
        'discrepancy' (None without records)
    """
    month_summaries = summarize_months(per_employee_allocations, months)
    company_breakdown = summarize_companies(per_employee_allocations, months)

    discrepancy = None
    if employees is not None and invoices is not None:
        if discrepancy_month is None:
            logger.warning("No month given for the discrepancy check, skipping it")
        else:
            engine_total = month_summaries.get(discrepancy_month['key'], {}).get('total')
            discrepancy = calculate_discrepancy(
                employees,
                invoices,
                discrepancy_month,
                settings,
                engine_total=engine_total
            )

    logger.info(f"Summarized {len(per_employee_allocations)} employees over {len(months)} months")

    return {
        'month_summaries': month_summaries,
        'company_breakdown': company_breakdown,
        'totals': get_window_totals(month_summaries),
        'discrepancy': discrepancy,
    }
