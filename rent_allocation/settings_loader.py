#!/usr/bin/env python3
"""
Settings Loader Module

This module loads and merges allocation settings from different levels:
1. Built-in defaults
2. An optional JSON settings file (Data/allocation_settings.json)
3. Environment variable overrides
4. Explicit overrides passed by the caller (e.g. command line flags)

The merged settings drive the month window, the default rent used when an
employee has no rent on file, deposit detection and the status filters.
"""

import os
import json
import logging
import datetime
from copy import deepcopy
from decimal import Decimal
from typing import Dict, Any, Optional, List, Tuple
from dateutil import tz

from rent_allocation.utils.helpers import load_json, to_decimal

# Configure logging
logger = logging.getLogger(__name__)

# Constants
SETTINGS_PATH = os.path.join('Data', 'allocation_settings.json')
SETTINGS_PATH_ENV = 'RENT_ALLOCATION_SETTINGS_PATH'

DEFAULT_RENT = Decimal('3500')

# Store timestamps are turned into calendar dates in this zone
DEFAULT_TIMEZONE = 'Asia/Hong_Kong'

DEPOSIT_KEYWORDS = (
    'deposit',
    'deposite',
    '按金',
    '押金',
    'security',
    '-a001',
    '-a002',
    '-a003',
)

EMPLOYEE_STATUSES = {
    'housed': '已入住',
    'pending': '待入住',
    'pending_assignment': '待分配',
    'terminated': '已終止',
    'pending_resign': '待離職',
    'resigned': '已離職',
}

DEFAULT_SETTINGS = {
    'default_rent': str(DEFAULT_RENT),
    'months_before': 3,
    'months_after': 8,
    'deposit_keywords': list(DEPOSIT_KEYWORDS),
    'active_statuses': ['housed'],
    'excluded_statuses': ['resigned'],
    'mismatch_tolerance': '0.01',
    'output_dir': os.path.join('Output', 'Reports'),
    'snapshot_path': os.path.join('Data', 'monthly_snapshots.json'),
    'timezone': DEFAULT_TIMEZONE,
}

# Environment variable -> (settings key, converter)
ENV_OVERRIDES = {
    'RENT_ALLOCATION_DEFAULT_RENT': ('default_rent', str),
    'RENT_ALLOCATION_MONTHS_BEFORE': ('months_before', int),
    'RENT_ALLOCATION_MONTHS_AFTER': ('months_after', int),
    'RENT_ALLOCATION_TIMEZONE': ('timezone', str),
}


def deep_merge(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with dict2 values overriding dict1 values when both exist.

    Args:
        dict1: Base dictionary
        dict2: Dictionary to merge on top of dict1

    Returns:
        New dictionary with merged values
    """
    result = deepcopy(dict1)

    for key, value in dict2.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        elif value is not None and value != "":
            # Empty values never override a configured one
            result[key] = deepcopy(value)

    return result


def get_settings_path() -> str:
    """Return the settings file path, honoring the environment override."""
    return os.environ.get(SETTINGS_PATH_ENV) or SETTINGS_PATH


def load_settings_file(file_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the JSON settings file.

    Args:
        file_path: Optional explicit path (defaults to get_settings_path())

    Returns:
        Dictionary with the file's settings, or empty dictionary when the
        file is missing or invalid
    """
    path = file_path or get_settings_path()

    if not os.path.exists(path):
        logger.debug(f"No settings file at {path}, using defaults")
        return {}

    try:
        data = load_json(path)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning(f"Could not load settings from {path}. Using defaults.")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Settings file {path} does not contain an object. Using defaults.")
        return {}

    # Accept both a flat document and one nested under "settings"
    if isinstance(data.get('settings'), dict):
        return data['settings']

    return data


def apply_environment_overrides(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Apply RENT_ALLOCATION_* environment variables on top of settings.

    Args:
        settings: Settings dictionary

    Returns:
        New settings dictionary with environment overrides applied
    """
    overrides = {}

    for env_name, (key, converter) in ENV_OVERRIDES.items():
        raw_value = os.environ.get(env_name)
        if raw_value is None or raw_value.strip() == "":
            continue
        try:
            overrides[key] = converter(raw_value.strip())
            logger.info(f"Using {key}={overrides[key]} from {env_name}")
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_name}: {raw_value}")

    return deep_merge(settings, overrides)


def load_settings(
    file_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Load merged allocation settings.

    Args:
        file_path: Optional settings file path
        overrides: Optional explicit overrides applied last

    Returns:
        Dictionary containing merged settings
    """
    settings = deep_merge(DEFAULT_SETTINGS, load_settings_file(file_path))
    settings = apply_environment_overrides(settings)

    if overrides:
        settings = deep_merge(settings, overrides)

    logger.debug(f"Loaded settings: {settings}")
    return settings


def resolve_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill any missing keys of a caller-supplied settings dictionary with defaults."""
    if settings is None:
        return deepcopy(DEFAULT_SETTINGS)
    return deep_merge(DEFAULT_SETTINGS, settings)


def get_default_rent(settings: Optional[Dict[str, Any]] = None) -> Decimal:
    """Return the rent substituted for employees without a rent on file.

    Args:
        settings: Settings dictionary

    Returns:
        Default rent as Decimal
    """
    value = resolve_settings(settings).get('default_rent')
    rent = to_decimal(value, DEFAULT_RENT)

    if rent <= 0:
        logger.warning(f"Configured default rent {value} is not positive, using {DEFAULT_RENT}")
        return DEFAULT_RENT

    return rent


def get_deposit_keywords(settings: Optional[Dict[str, Any]] = None) -> List[str]:
    """Return the lower-cased deposit keywords."""
    keywords = resolve_settings(settings).get('deposit_keywords') or DEPOSIT_KEYWORDS
    return [str(keyword).lower() for keyword in keywords]


def get_month_window(settings: Optional[Dict[str, Any]] = None) -> Tuple[int, int]:
    """Return (months_before, months_after) for the reporting window.

    Raises:
        ValueError: If either bound is negative or not an integer
    """
    resolved = resolve_settings(settings)
    months_before = int(resolved['months_before'])
    months_after = int(resolved['months_after'])

    if months_before < 0 or months_after < 0:
        raise ValueError(f"Month window bounds must not be negative: {months_before}, {months_after}")

    return months_before, months_after


def get_mismatch_tolerance(settings: Optional[Dict[str, Any]] = None) -> Decimal:
    """Return the tolerance used when comparing rent against invoiced amounts."""
    return to_decimal(resolve_settings(settings).get('mismatch_tolerance'), Decimal('0.01'))


def get_timezone(settings: Optional[Dict[str, Any]] = None) -> datetime.tzinfo:
    """Return the timezone used to read timestamps as calendar dates.

    Args:
        settings: Settings dictionary

    Returns:
        tzinfo for the configured zone name, UTC when the name is unknown
    """
    name = resolve_settings(settings).get('timezone') or DEFAULT_TIMEZONE
    zone = tz.gettz(name)

    if zone is None:
        logger.warning(f"Unknown timezone {name}, reading timestamps as UTC")
        return tz.UTC

    return zone


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    merged = load_settings()
    print(f"Default rent: {get_default_rent(merged)}")
    print(f"Month window: {get_month_window(merged)}")
    print(f"Deposit keywords: {', '.join(get_deposit_keywords(merged))}")
    print(f"Timezone: {get_timezone(merged)}")
