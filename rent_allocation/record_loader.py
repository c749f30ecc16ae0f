#!/usr/bin/env python3
"""
Record Loader Module

This module loads exported employee and invoice records from JSON and
normalizes them into the field names used by the allocation engine.
Exports come from the dashboard's document store, so field names appear in
both snake_case and camelCase, dates appear as strings or timestamp objects
and amounts may carry currency symbols.
"""

import logging
import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List, Optional

from rent_allocation.utils.helpers import (
    load_json,
    parse_date,
    clean_currency_symbols,
    first_present,
    InvalidRecordError,
)
from rent_allocation.settings_loader import get_timezone

# Configure logging
logger = logging.getLogger(__name__)


def _record_id(raw: Dict[str, Any]) -> Optional[str]:
    value = first_present(raw, 'id', '_id')
    return str(value) if value is not None else None


def _parse_record_date(
    raw: Dict[str, Any],
    record_id: Optional[str],
    field: str,
    *keys: str,
    tzinfo: Optional[datetime.tzinfo] = None
):
    """Parse an optional date field; a present but unparseable value is an error."""
    value = first_present(raw, *keys)
    if value is None:
        return None

    parsed = parse_date(value, tzinfo)
    if parsed is None:
        raise InvalidRecordError(
            f"Record {record_id}: cannot parse {field} {value!r}",
            record_id=record_id,
            field=field
        )
    return parsed


def _parse_record_amount(raw: Dict[str, Any], record_id: Optional[str], field: str, *keys: str) -> Optional[Decimal]:
    """Parse an optional amount field; a present but unparseable value is an error."""
    value = first_present(raw, *keys)
    if value is None:
        return None

    try:
        return clean_currency_symbols(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidRecordError(
            f"Record {record_id}: cannot parse {field} {value!r}",
            record_id=record_id,
            field=field
        )


def _parse_flag(value: Any) -> Optional[bool]:
    """Parse a boolean flag stored as bool, number or text."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ('true', 'yes', '1', 'y')


def _parse_names(value: Any) -> List[str]:
    """Employee names on an invoice are stored as a list or a comma separated string."""
    if not value:
        return []
    if isinstance(value, str):
        parts = value.replace('，', ',').split(',')
    else:
        parts = list(value)
    return [str(part).strip() for part in parts if part and str(part).strip()]


def normalize_employee(raw: Dict[str, Any], tzinfo: Optional[datetime.tzinfo] = None) -> Dict[str, Any]:
    """
    Normalize an exported employee record.

    Args:
        raw: Employee record as exported
        tzinfo: Zone in which timestamps are read as calendar dates

    Returns:
        Dictionary with id, name, first_name, company, contract_number,
        status, monthly_rent (Decimal or None), arrival_date and
        departure_date

    Raises:
        InvalidRecordError: If the rent or a date cannot be parsed
    """
    record_id = _record_id(raw)

    return {
        'id': record_id,
        'name': first_present(raw, 'name', default=''),
        'first_name': first_present(raw, 'first_name', 'firstName', default=''),
        'company': first_present(raw, 'company', 'companyName', default=''),
        'contract_number': first_present(raw, 'contract_number', 'contractNumber', default=''),
        'status': first_present(raw, 'status', default=''),
        'monthly_rent': _parse_record_amount(raw, record_id, 'monthly_rent', 'monthly_rent', 'rent', 'monthlyRent'),
        'arrival_date': _parse_record_date(
            raw, record_id, 'arrival_date', 'arrival_date', 'arrivalDate', 'checkInDate', tzinfo=tzinfo
        ),
        'departure_date': _parse_record_date(
            raw, record_id, 'departure_date', 'departure_date', 'departureDate', 'checkOutDate', tzinfo=tzinfo
        ),
    }


def normalize_invoice(raw: Dict[str, Any], tzinfo: Optional[datetime.tzinfo] = None) -> Dict[str, Any]:
    """
    Normalize an exported invoice record.

    Args:
        raw: Invoice record as exported
        tzinfo: Zone in which timestamps are read as calendar dates

    Returns:
        Dictionary with id, invoice_number, contract_number, employee_id,
        employee_names, company, amount, total_amount, start_date, end_date,
        status, is_paid, is_issued, description, type, notes and receipt_urls

    Raises:
        InvalidRecordError: If an amount or a date cannot be parsed
    """
    record_id = _record_id(raw)
    status = first_present(raw, 'status', default='')

    is_paid = _parse_flag(first_present(raw, 'is_paid', 'isPaid'))
    amount = _parse_record_amount(raw, record_id, 'amount', 'amount')

    receipt_urls = first_present(raw, 'receipt_urls', 'receiptUrls', default=[])
    if isinstance(receipt_urls, str):
        receipt_urls = [receipt_urls]
    single_receipt = first_present(raw, 'receipt_url', 'receiptUrl')
    if single_receipt and single_receipt not in receipt_urls:
        receipt_urls = list(receipt_urls) + [single_receipt]

    employee_id = first_present(raw, 'employee_id', 'employeeId')

    invoice = {
        'id': record_id,
        'invoice_number': str(first_present(raw, 'invoice_number', 'invoiceNumber', default='')),
        'contract_number': first_present(raw, 'contract_number', 'contractNumber', default=''),
        'employee_id': str(employee_id) if employee_id is not None else None,
        'employee_names': _parse_names(first_present(raw, 'employee_names', 'employeeNames')),
        'company': first_present(raw, 'company', default=''),
        'amount': amount if amount is not None else Decimal('0'),
        'total_amount': _parse_record_amount(raw, record_id, 'total_amount', 'total_amount', 'totalAmount'),
        'employee_count': first_present(raw, 'employee_count', 'employeeCount', default=1),
        'frequency': first_present(raw, 'frequency', default=''),
        'start_date': _parse_record_date(raw, record_id, 'start_date', 'start_date', 'startDate', tzinfo=tzinfo),
        'end_date': _parse_record_date(raw, record_id, 'end_date', 'end_date', 'endDate', tzinfo=tzinfo),
        'status': status,
        'is_paid': bool(is_paid) or status == 'paid',
        'is_issued': _parse_flag(first_present(raw, 'is_issued', 'isIssued')),
        'description': first_present(raw, 'description', default=''),
        'type': first_present(raw, 'type', default=''),
        'notes': first_present(raw, 'notes', default=''),
        'receipt_urls': list(receipt_urls),
        'created_at': _parse_record_date(raw, record_id, 'created_at', 'created_at', 'createdAt', tzinfo=tzinfo),
    }

    if invoice['start_date'] and invoice['end_date'] and invoice['start_date'] > invoice['end_date']:
        logger.warning(
            f"Invoice {invoice['invoice_number'] or record_id} ends before it starts "
            f"({invoice['start_date']} > {invoice['end_date']})"
        )

    return invoice


def normalize_employees(
    raw_records: List[Dict[str, Any]],
    tzinfo: Optional[datetime.tzinfo] = None
) -> List[Dict[str, Any]]:
    """Normalize a list of employee records."""
    return [normalize_employee(raw, tzinfo) for raw in raw_records]


def normalize_invoices(
    raw_records: List[Dict[str, Any]],
    tzinfo: Optional[datetime.tzinfo] = None
) -> List[Dict[str, Any]]:
    """Normalize a list of invoice records."""
    return [normalize_invoice(raw, tzinfo) for raw in raw_records]


def load_records(file_path: str, collection: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load raw records from a JSON export.

    The export may be a list of records, an object holding the collection
    under its name (e.g. {"invoices": [...]}) or an object mapping document
    ids to records.

    Args:
        file_path: Path to the JSON export
        collection: Collection name to pick from an object export

    Returns:
        List of raw record dictionaries

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file isn't valid JSON
        ValueError: If the document has an unexpected shape
    """
    data = load_json(file_path)

    if isinstance(data, dict) and collection and collection in data:
        data = data[collection]

    if isinstance(data, list):
        records = [record for record in data if isinstance(record, dict)]
    elif isinstance(data, dict) and all(isinstance(value, dict) for value in data.values()):
        records = []
        for doc_id, record in data.items():
            item = dict(record)
            item.setdefault('id', doc_id)
            records.append(item)
    else:
        raise ValueError(f"Unexpected document shape in {file_path}")

    logger.info(f"Loaded {len(records)} {collection or 'records'} from {file_path}")
    return records


def load_snapshot(
    employees_path: str,
    invoices_path: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Load and normalize the employee and invoice collections.

    Args:
        employees_path: JSON export holding employees (or both collections)
        invoices_path: JSON export holding invoices (defaults to employees_path)
        settings: Settings dictionary (timestamps are read in its timezone)

    Returns:
        Dictionary with normalized 'employees' and 'invoices' lists
    """
    tzinfo = get_timezone(settings)
    employees = normalize_employees(load_records(employees_path, 'employees'), tzinfo)
    invoices = normalize_invoices(load_records(invoices_path or employees_path, 'invoices'), tzinfo)

    return {'employees': employees, 'invoices': invoices}
