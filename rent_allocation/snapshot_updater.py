#!/usr/bin/env python3
"""
Snapshot Updater Module

This module records month-level rent snapshots (receivable rent, received
rent, head count, collection rate) in a JSON history file so that past
months can be compared after the underlying records have changed.
"""

import json
import logging
import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Optional, Union

from rent_allocation.utils.helpers import load_json, save_json, to_decimal
from rent_allocation.settings_loader import resolve_settings, get_deposit_keywords
from rent_allocation.employee_filters import get_housed_employees
from rent_allocation.deposit_filter import filter_deposits
from rent_allocation.overlap_calculator import invoice_overlaps_month
from rent_allocation.period_calculator import resolve_month
from rent_allocation.payment_tracker import calculate_percentage_change

# Configure logging
logger = logging.getLogger(__name__)

RATE_QUANTIZE = Decimal('0.01')

# Received rent above this share of receivable rent is flagged
RECEIVED_TOLERANCE_FACTOR = Decimal('1.1')


def get_snapshot_path(settings: Optional[Dict[str, Any]] = None) -> str:
    """Return the snapshot history file path from settings."""
    return resolve_settings(settings)['snapshot_path']


def load_snapshots(file_path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load the snapshot history.

    Args:
        file_path: History file path (defaults to the configured path)

    Returns:
        Dictionary mapping YYYY-MM keys to snapshots, empty if the file is
        missing or invalid
    """
    path = file_path or get_snapshot_path()

    try:
        snapshots = load_json(path)
        logger.info(f"Loaded {len(snapshots)} snapshots from {path}")
        return snapshots
    except FileNotFoundError:
        logger.warning(f"Snapshot history not found at {path}, starting empty")
        return {}
    except json.JSONDecodeError:
        logger.warning(f"Snapshot history at {path} is not valid JSON, starting empty")
        return {}


def save_snapshots(snapshots: Dict[str, Dict[str, Any]], file_path: Optional[str] = None) -> bool:
    """
    Save the snapshot history.

    Args:
        snapshots: Dictionary mapping YYYY-MM keys to snapshots
        file_path: History file path (defaults to the configured path)

    Returns:
        True if successful, False otherwise
    """
    path = file_path or get_snapshot_path()
    success = save_json(path, snapshots)

    if success:
        logger.info(f"Saved {len(snapshots)} snapshots to {path}")

    return success


def calculate_monthly_snapshot(
    employees: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    month: Union[str, Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None,
    property_costs: Union[Decimal, int, str] = 0,
    properties_count: int = 0
) -> Dict[str, Any]:
    """
    Calculate the snapshot figures of a month.

    Args:
        employees: Employee records
        invoices: Invoice records
        month: Month dictionary or YYYY-MM key
        settings: Settings dictionary
        property_costs: Total rent paid for the properties in the month
        properties_count: Number of properties

    Returns:
        Dictionary with total_rent_cost, total_receivable_rent,
        actual_received_rent, number_of_employees, properties_count and
        collection_rate
    """
    month_info = resolve_month(month)
    housed = get_housed_employees(employees, settings)

    total_receivable_rent = sum(
        (employee.get('monthly_rent') or Decimal('0') for employee in housed),
        Decimal('0')
    )

    received_invoices = [
        invoice for invoice in filter_deposits(invoices, get_deposit_keywords(settings))
        if invoice.get('is_paid')
        and invoice.get('is_issued') is not False
        and invoice_overlaps_month(invoice.get('start_date'), invoice.get('end_date'), month_info)
    ]
    actual_received_rent = sum(
        (invoice.get('amount') or Decimal('0') for invoice in received_invoices),
        Decimal('0')
    )

    if total_receivable_rent > 0:
        collection_rate = (actual_received_rent / total_receivable_rent * Decimal('100')).quantize(
            RATE_QUANTIZE, rounding=ROUND_HALF_UP
        )
    else:
        collection_rate = Decimal('0.00')

    return {
        'total_rent_cost': to_decimal(property_costs),
        'total_receivable_rent': total_receivable_rent,
        'actual_received_rent': actual_received_rent,
        'number_of_employees': len(housed),
        'properties_count': properties_count,
        'collection_rate': collection_rate,
    }


def validate_snapshot_data(snapshot_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check snapshot figures for values that point at bad source data.

    Args:
        snapshot_data: Snapshot figures

    Returns:
        Dictionary with 'is_valid' and a list of 'issues'
    """
    issues = []

    total_rent_cost = to_decimal(snapshot_data.get('total_rent_cost'))
    receivable = to_decimal(snapshot_data.get('total_receivable_rent'))
    received = to_decimal(snapshot_data.get('actual_received_rent'))
    employee_count = snapshot_data.get('number_of_employees', 0)

    if total_rent_cost < 0:
        issues.append("Total rent cost is negative")

    if receivable < 0:
        issues.append("Total receivable rent is negative")

    if received < 0:
        issues.append("Actual received rent is negative")

    if received > receivable * RECEIVED_TOLERANCE_FACTOR:
        issues.append("Received rent exceeds receivable rent by more than 10%")

    if employee_count == 0 and receivable > 0:
        issues.append("Receivable rent recorded without any housed employees")

    return {'is_valid': not issues, 'issues': issues}


def _to_storage(snapshot_data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert Decimals to float for JSON storage."""
    return {
        key: float(value) if isinstance(value, Decimal) else value
        for key, value in snapshot_data.items()
    }


def create_monthly_snapshot(
    employees: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    month: Union[str, Dict[str, Any]],
    snapshots: Optional[Dict[str, Dict[str, Any]]] = None,
    settings: Optional[Dict[str, Any]] = None,
    overwrite: bool = False,
    notes: str = "",
    property_costs: Union[Decimal, int, str] = 0,
    properties_count: int = 0
) -> Dict[str, Any]:
    """
    Create the snapshot of a month and store it in the history.

    Args:
        employees: Employee records
        invoices: Invoice records
        month: Month dictionary or YYYY-MM key
        snapshots: Snapshot history to update (loaded when not given)
        settings: Settings dictionary
        overwrite: Replace an existing snapshot of the month
        notes: Free-text notes stored with the snapshot
        property_costs: Total rent paid for the properties in the month
        properties_count: Number of properties

    Returns:
        Dictionary with 'success', 'snapshot_id', 'snapshot', 'validation'
        and 'message'
    """
    month_info = resolve_month(month)
    snapshot_id = month_info['key']

    if snapshots is None:
        snapshots = load_snapshots(get_snapshot_path(settings))

    if snapshot_id in snapshots and not overwrite:
        logger.info(f"Snapshot {snapshot_id} already exists, not overwriting")
        return {
            'success': False,
            'snapshot_id': snapshot_id,
            'snapshot': snapshots[snapshot_id],
            'validation': None,
            'message': f"Snapshot {snapshot_id} already exists",
        }

    data = calculate_monthly_snapshot(
        employees, invoices, month_info, settings, property_costs, properties_count
    )
    validation = validate_snapshot_data(data)

    for issue in validation['issues']:
        logger.warning(f"Snapshot {snapshot_id}: {issue}")

    snapshot = {
        'id': snapshot_id,
        'year': month_info['year'],
        'month': month_info['month'],
        'data': _to_storage(data),
        'created_at': datetime.datetime.now().isoformat(timespec='seconds'),
        'notes': notes,
    }
    snapshots[snapshot_id] = snapshot

    logger.info(
        f"Recorded snapshot {snapshot_id}: receivable {data['total_receivable_rent']}, "
        f"received {data['actual_received_rent']}, collection rate {data['collection_rate']}%"
    )

    return {
        'success': True,
        'snapshot_id': snapshot_id,
        'snapshot': snapshot,
        'validation': validation,
        'message': f"Snapshot {snapshot_id} recorded",
    }


def update_snapshots(
    employees: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    months: List[Union[str, Dict[str, Any]]],
    file_path: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    overwrite: bool = False
) -> Dict[str, Any]:
    """
    Create snapshots for several months and save the history once.

    Args:
        employees: Employee records
        invoices: Invoice records
        months: Month dictionaries or YYYY-MM keys
        file_path: History file path (defaults to the configured path)
        settings: Settings dictionary
        overwrite: Replace existing snapshots

    Returns:
        Dictionary with 'created', 'skipped' and 'success'
    """
    path = file_path or get_snapshot_path(settings)
    snapshots = load_snapshots(path)

    created = []
    skipped = []

    for month in months:
        result = create_monthly_snapshot(
            employees, invoices, month, snapshots=snapshots, settings=settings, overwrite=overwrite
        )
        if result['success']:
            created.append(result['snapshot_id'])
        else:
            skipped.append(result['snapshot_id'])

    success = save_snapshots(snapshots, path) if created else True

    logger.info(f"Snapshot update: {len(created)} created, {len(skipped)} skipped")

    return {'created': created, 'skipped': skipped, 'success': success}


def generate_snapshot_comparisons(snapshots: Union[Dict[str, Dict[str, Any]], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Compare each snapshot with the one of the month before it.

    Args:
        snapshots: Snapshot history (dictionary or list)

    Returns:
        List of comparisons, newest first, each with current_period,
        previous_period and the changes in receivable rent, received rent
        (percent), collection rate and head count (differences)
    """
    if isinstance(snapshots, dict):
        ordered = list(snapshots.values())
    else:
        ordered = list(snapshots)

    ordered.sort(key=lambda snapshot: snapshot['id'], reverse=True)

    comparisons = []

    for current, previous in zip(ordered, ordered[1:]):
        current_data = current['data']
        previous_data = previous['data']

        receivable_change = calculate_percentage_change(
            to_decimal(previous_data.get('total_receivable_rent')),
            to_decimal(current_data.get('total_receivable_rent'))
        )
        received_change = calculate_percentage_change(
            to_decimal(previous_data.get('actual_received_rent')),
            to_decimal(current_data.get('actual_received_rent'))
        )

        comparisons.append({
            'current_period': current['id'],
            'previous_period': previous['id'],
            'changes': {
                'total_receivable_rent': receivable_change['percentage_change'],
                'actual_received_rent': received_change['percentage_change'],
                'collection_rate': (
                    to_decimal(current_data.get('collection_rate'))
                    - to_decimal(previous_data.get('collection_rate'))
                ),
                'number_of_employees': (
                    current_data.get('number_of_employees', 0)
                    - previous_data.get('number_of_employees', 0)
                ),
            },
        })

    return comparisons
