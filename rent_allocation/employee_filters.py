#!/usr/bin/env python3
"""
Employee status filters used to decide whose rent is reported.
"""

import logging
from typing import Dict, Any, List, Optional, Iterable

from rent_allocation.settings_loader import resolve_settings
from rent_allocation.employee_matcher import get_employee_name

# Configure logging
logger = logging.getLogger(__name__)


def is_rent_payer(employee: Dict[str, Any], settings: Optional[Dict[str, Any]] = None) -> bool:
    """
    Check whether an employee currently pays rent.

    Args:
        employee: Employee record
        settings: Settings with active_statuses and excluded_statuses

    Returns:
        True if the status is active and not excluded
    """
    resolved = resolve_settings(settings)
    status = employee.get('status')

    return status in resolved['active_statuses'] and status not in resolved['excluded_statuses']


def get_housed_employees(
    employees: List[Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """Return the rent-paying employees, in input order."""
    housed = [employee for employee in employees if is_rent_payer(employee, settings)]
    logger.info(f"{len(housed)} of {len(employees)} employees are rent payers")
    return housed


def get_employees_by_statuses(
    employees: List[Dict[str, Any]],
    statuses: Iterable[str]
) -> List[Dict[str, Any]]:
    """Return the employees whose status is one of the given statuses."""
    wanted = set(statuses)
    return [employee for employee in employees if employee.get('status') in wanted]


def filter_employees_by_search(employees: List[Dict[str, Any]], term: Optional[str]) -> List[Dict[str, Any]]:
    """
    Filter employees by a free-text search term.

    The term is matched case-insensitively against the name, company,
    contract number and id. An empty term returns every employee.
    """
    if not term or not term.strip():
        return list(employees)

    needle = term.strip().lower()
    results = []

    for employee in employees:
        haystack = [
            get_employee_name(employee),
            employee.get('company') or '',
            employee.get('contract_number') or '',
            str(employee.get('id') or ''),
        ]
        if any(needle in str(value).lower() for value in haystack):
            results.append(employee)

    return results
