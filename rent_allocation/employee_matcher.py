#!/usr/bin/env python3
"""
Employee Matcher Module

Links invoices to employees. The employee id stored on the invoice is the
authoritative link; invoices created before ids were recorded fall back to
comparing the invoice's employee name list with the employee's name.
"""

import logging
from typing import Dict, Any, List, Optional

# Configure logging
logger = logging.getLogger(__name__)

MATCHED_BY_ID = 'id'
MATCHED_BY_NAME = 'name'


def get_employee_name(employee: Dict[str, Any]) -> str:
    """Return the employee's display name, falling back to the first name."""
    return employee.get('name') or employee.get('first_name') or employee.get('firstName') or ''


def names_match(invoice_name: Any, employee_name: Any) -> bool:
    """
    Compare two names by substring containment in either direction.

    The comparison is case-sensitive and empty names never match.

    Args:
        invoice_name: Name listed on the invoice
        employee_name: Employee's name

    Returns:
        True if either name contains the other
    """
    if not invoice_name or not employee_name:
        return False

    first = str(invoice_name).strip()
    second = str(employee_name).strip()

    if not first or not second:
        return False

    return first in second or second in first


def match_invoice_to_employee(invoice: Dict[str, Any], employee: Dict[str, Any]) -> Optional[str]:
    """
    Decide whether an invoice belongs to an employee.

    Args:
        invoice: Invoice record
        employee: Employee record

    Returns:
        'id' when linked by employee id, 'name' when linked by the name
        fallback, None when the invoice does not belong to the employee
    """
    employee_id = employee.get('id')
    invoice_employee_id = invoice.get('employee_id')

    if employee_id not in (None, '') and invoice_employee_id not in (None, ''):
        if str(invoice_employee_id) == str(employee_id):
            return MATCHED_BY_ID

    employee_name = get_employee_name(employee)
    for name in invoice.get('employee_names') or []:
        if names_match(name, employee_name):
            return MATCHED_BY_NAME

    return None


def find_employee_invoices(
    employee: Dict[str, Any],
    invoices: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Find the invoices belonging to an employee.

    Args:
        employee: Employee record
        invoices: Invoice records

    Returns:
        List of dictionaries with 'invoice' and 'matched_by', in input order
    """
    matches = []

    for invoice in invoices:
        matched_by = match_invoice_to_employee(invoice, employee)
        if matched_by is None:
            continue
        if matched_by == MATCHED_BY_NAME:
            logger.debug(
                f"Invoice {invoice.get('invoice_number')} matched employee "
                f"{employee.get('id')} ({get_employee_name(employee)}) by name"
            )
        matches.append({'invoice': invoice, 'matched_by': matched_by})

    return matches


def find_invoice_employees(
    invoice: Dict[str, Any],
    employees: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Return the employees an invoice matches, in input order."""
    return [
        employee for employee in employees
        if match_invoice_to_employee(invoice, employee) is not None
    ]


def find_ambiguous_invoices(
    invoices: List[Dict[str, Any]],
    employees: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Find invoices that match more than one employee.

    Returns:
        List of dictionaries with invoice_id, invoice_number and employee_ids
    """
    ambiguous = []

    for invoice in invoices:
        matched = find_invoice_employees(invoice, employees)
        if len(matched) > 1:
            ambiguous.append({
                'invoice_id': invoice.get('id'),
                'invoice_number': invoice.get('invoice_number'),
                'employee_ids': [employee.get('id') for employee in matched],
            })

    if ambiguous:
        logger.warning(f"{len(ambiguous)} invoices match more than one employee")

    return ambiguous
