#!/usr/bin/env python3
"""
Helper utilities for the rent allocation engine.

This module contains common utility functions used throughout the allocation
process: JSON file access, date and amount parsing, and currency formatting.
"""

import os
import re
import json
import logging
import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, Union

# Configure logging
logger = logging.getLogger(__name__)

MONEY_QUANTIZE = Decimal('0.01')

# Currency markers seen in amounts typed into the dashboard
_CURRENCY_MARKERS = re.compile(r'\$HK|HK\$|\$|港币|港元', re.IGNORECASE)
_NON_NUMERIC = re.compile(r'[^\d.,\-]')


class InvalidRecordError(ValueError):
    """Raised when an employee or invoice record carries a value that cannot be parsed."""

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
        self.field = field


def load_json(file_path: str) -> Any:
    """
    Load a JSON file and return its contents.

    Args:
        file_path: Path to the JSON file

    Returns:
        The decoded JSON document

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file isn't valid JSON
    """
    try:
        with open(file_path, 'r', encoding='utf-8-sig') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {file_path}")
        raise
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in file: {file_path}")
        raise


def save_json(file_path: str, data: Any, indent: int = 2) -> bool:
    """
    Save data to a JSON file.

    Args:
        file_path: Path where to save the JSON file
        data: Data to save (must be JSON serializable)
        indent: Number of spaces for indentation (default: 2)

    Returns:
        True if successful, False otherwise
    """
    try:
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error saving JSON file {file_path}: {str(e)}")
        return False


def parse_date(value: Any, tzinfo: Optional[datetime.tzinfo] = None) -> Optional[datetime.date]:
    """
    Parse a date value in the shapes found in exported store records.

    Accepts date/datetime objects, Firestore-style timestamp dictionaries
    ({"seconds": ...} or {"_seconds": ...}) and strings in ISO,
    YYYY/MM/DD or MM/DD/YYYY format.

    Args:
        value: Raw date value
        tzinfo: Zone in which timestamps are read as calendar dates (defaults
            to UTC for timestamp dictionaries; strings keep their written date)

    Returns:
        datetime.date object or None if the value is empty or cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime.datetime):
        if tzinfo is not None and value.tzinfo is not None:
            value = value.astimezone(tzinfo)
        return value.date()

    if isinstance(value, datetime.date):
        return value

    if isinstance(value, dict):
        seconds = value.get('seconds', value.get('_seconds'))
        if seconds is None:
            logger.error(f"Could not parse date: {value}")
            return None
        try:
            return datetime.datetime.fromtimestamp(int(seconds), tz=tzinfo or datetime.timezone.utc).date()
        except (TypeError, ValueError, OverflowError, OSError):
            logger.error(f"Could not parse timestamp: {value}")
            return None

    if not isinstance(value, str):
        logger.error(f"Could not parse date: {value!r}")
        return None

    date_str = value.strip()

    # Timestamps carrying an offset are moved into the requested zone first
    if tzinfo is not None and len(date_str) > 10:
        try:
            moment = datetime.datetime.fromisoformat(date_str.replace('Z', '+00:00'))
            if moment.tzinfo is not None:
                return moment.astimezone(tzinfo).date()
        except ValueError:
            pass

    # ISO timestamps carry a time part we do not need
    try:
        return datetime.date.fromisoformat(date_str[:10])
    except ValueError:
        pass

    formats = [
        "%Y/%m/%d",             # YYYY/MM/DD
        "%m/%d/%Y",             # MM/DD/YYYY
        "%m/%d/%Y %I:%M:%S %p"  # MM/DD/YYYY HH:MM:SS AM/PM
    ]

    for fmt in formats:
        try:
            dt = datetime.datetime.strptime(date_str, fmt)
            return dt.date()
        except ValueError:
            continue

    logger.error(f"Could not parse date: {date_str}")
    return None


def clean_currency_symbols(amount: Union[Decimal, float, int, str, None]) -> Decimal:
    """
    Strip currency symbols and thousands separators from an amount.

    Args:
        amount: Amount as number or text such as "HK$3,500.00"

    Returns:
        Amount as Decimal (0 when empty)

    Raises:
        InvalidOperation: If nothing numeric remains after cleaning
    """
    if amount is None or amount == "":
        return Decimal('0')

    if isinstance(amount, Decimal):
        return amount

    if isinstance(amount, (int, float)):
        return Decimal(str(amount))

    cleaned = _CURRENCY_MARKERS.sub('', str(amount))
    cleaned = _NON_NUMERIC.sub('', cleaned).replace(',', '')

    if not cleaned:
        return Decimal('0')

    return Decimal(cleaned)


def to_decimal(value: Any, default: Decimal = Decimal('0')) -> Decimal:
    """
    Convert a settings or record value to Decimal, falling back to a default.

    Args:
        value: Value to convert
        default: Value returned for empty or invalid input

    Returns:
        Decimal value
    """
    if value is None or value == "":
        return default

    try:
        return clean_currency_symbols(value)
    except (InvalidOperation, ValueError, TypeError):
        logger.error(f"Invalid amount: {value}, using {default}")
        return default


def format_currency(amount: Union[Decimal, float, int, str, None]) -> str:
    """
    Format a number as currency without a currency symbol.

    Args:
        amount: Amount to format

    Returns:
        Formatted amount like "3,500.00"
    """
    value = to_decimal(amount)
    return f"{value.quantize(MONEY_QUANTIZE):,.2f}"


def first_present(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """
    Return the first non-empty value among several alternative field names.

    Args:
        record: Source record
        keys: Field names in order of preference
        default: Value returned when none is present
    """
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default
