#!/usr/bin/env python3
"""
Report Generator Module

This module writes the allocation report as CSV files (UTF-8 with BOM so the
Chinese headers open correctly in Excel) and as a JSON document with the full
per-month drill-down.
"""

import os
import csv
import json
import logging
import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional

from rent_allocation.utils.helpers import format_currency

# Configure logging
logger = logging.getLogger(__name__)

# Constants
REPORTS_PATH = os.path.join('Output', 'Reports')

EMPLOYEE_COLUMNS = ['員工編號', '姓名', '公司', '合約號碼', '狀態', '月租']
UNRESOLVED_COLUMN = '未分配超額'

MONTH_SUMMARY_COLUMNS = ['月份', '應收租金', '已付款', '未付款', '已付款項目', '未付款項目', '員工數']

LINE_ITEM_COLUMNS = [
    '員工編號', '姓名', '公司', '月份', '發票號碼', '金額', '狀態',
    '開始日期', '結束日期', '重新分配', '收據URL'
]

DISCREPANCY_COLUMNS = [
    'Employee ID', 'Name', 'Company', 'Contract', 'Theoretical Rent',
    'Invoice Amount', 'Difference', 'Reason', 'Invoice Count', 'Invoice Numbers'
]

DISCREPANCY_COMPANY_COLUMNS = ['Company', 'Employees', 'Theoretical Rent', 'Invoiced Rent', 'Discrepancy']

PAID_LABEL = '已付款'
UNPAID_LABEL = '待付款'


def _default_path(output_dir: Optional[str], prefix: str, extension: str, timestamp: Optional[str] = None) -> str:
    if not timestamp:
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(output_dir or REPORTS_PATH, f"{prefix}_{timestamp}.{extension}")


def serialize_value(value: Any) -> Any:
    """Convert Decimals and dates nested in report data into JSON-friendly values."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def write_csv(output_path: str, header: List[str], rows: List[List[Any]]) -> str:
    """
    Write rows to a CSV file with a UTF-8 byte order mark.

    Fields are only quoted when they contain a comma, a quote or a line break.

    Args:
        output_path: Path of the CSV file
        header: Column names
        rows: Data rows

    Returns:
        Path to the generated CSV file, or empty string on error
    """
    try:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(output_path, 'w', newline='', encoding='utf-8-sig') as csvfile:
            writer = csv.writer(csvfile, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
            writer.writerow(header)
            writer.writerows(rows)

        logger.info(f"Wrote {len(rows)} rows to {output_path}")
        return output_path
    except OSError as e:
        logger.error(f"Error writing CSV report {output_path}: {str(e)}")
        return ""


def generate_month_window_csv(report: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the employee by month CSV report.

    Args:
        report: Allocation report from build_allocation_report
        output_path: Optional output path for the CSV file

    Returns:
        Path to the generated CSV file
    """
    if not output_path:
        output_path = _default_path(None, 'rent_allocation', 'csv')

    months = report['months']
    header = EMPLOYEE_COLUMNS + [month['label'] for month in months] + [UNRESOLVED_COLUMN]

    rows = []
    for result in report['employees']:
        employee = result['employee']
        row = [
            employee.get('id') or '',
            employee.get('name') or '',
            employee.get('company') or '',
            employee.get('contract') or '',
            employee.get('status') or '',
            format_currency(result['effective_rent']),
        ]
        row.extend(format_currency(result['months'][month['key']]['amount']) for month in months)
        row.append(format_currency(result['unresolved_excess']))
        rows.append(row)

    return write_csv(output_path, header, rows)


def generate_month_summary_csv(report: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the per-month totals CSV report.

    Args:
        report: Allocation report from build_allocation_report
        output_path: Optional output path for the CSV file

    Returns:
        Path to the generated CSV file
    """
    if not output_path:
        output_path = _default_path(None, 'rent_month_summary', 'csv')

    rows = []
    for month in report['months']:
        summary = report['month_summaries'][month['key']]
        rows.append([
            month['label'],
            format_currency(summary['total']),
            format_currency(summary['paid']),
            format_currency(summary['unpaid']),
            summary['paid_count'],
            summary['unpaid_count'],
            summary['employee_count'],
        ])

    return write_csv(output_path, MONTH_SUMMARY_COLUMNS, rows)


def generate_line_items_csv(report: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the line item drill-down CSV report.

    Args:
        report: Allocation report from build_allocation_report
        output_path: Optional output path for the CSV file

    Returns:
        Path to the generated CSV file
    """
    if not output_path:
        output_path = _default_path(None, 'rent_line_items', 'csv')

    rows = []
    for result in report['employees']:
        employee = result['employee']
        for month in report['months']:
            for item in result['months'][month['key']]['line_items']:
                rows.append([
                    employee.get('id') or '',
                    employee.get('name') or '',
                    employee.get('company') or '',
                    month['label'],
                    item.get('invoice_number') or '',
                    format_currency(item['amount']),
                    PAID_LABEL if item.get('is_paid') else UNPAID_LABEL,
                    item['invoice_start'].isoformat() if item.get('invoice_start') else '',
                    item['invoice_end'].isoformat() if item.get('invoice_end') else '',
                    '是' if item.get('is_redistribution') else '',
                    '\n'.join(item.get('receipt_urls') or []),
                ])

    return write_csv(output_path, LINE_ITEM_COLUMNS, rows)


def generate_discrepancy_csv(discrepancy: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the rent versus invoice discrepancy CSV report.

    Args:
        discrepancy: Result of calculate_discrepancy
        output_path: Optional output path for the CSV file

    Returns:
        Path to the generated CSV file
    """
    if not output_path:
        output_path = _default_path(None, f"rent_discrepancy_{discrepancy['month']}", 'csv')

    rows = []
    for row in discrepancy['employees']:
        rows.append([
            row['employee_id'] or '',
            row['name'],
            row['company'],
            row['contract'],
            format_currency(row['theoretical_rent']),
            format_currency(row['invoice_amount']),
            format_currency(row['difference']),
            row['reason'],
            row['invoice_count'],
            ', '.join(str(number) for number in row['invoice_numbers'] if number),
        ])

    return write_csv(output_path, DISCREPANCY_COLUMNS, rows)


def generate_discrepancy_company_csv(discrepancy: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the per-company discrepancy CSV report.

    Args:
        discrepancy: Result of calculate_discrepancy
        output_path: Optional output path for the CSV file

    Returns:
        Path to the generated CSV file
    """
    if not output_path:
        output_path = _default_path(None, f"rent_discrepancy_companies_{discrepancy['month']}", 'csv')

    rows = [
        [
            company,
            totals['count'],
            format_currency(totals['theoretical']),
            format_currency(totals['invoiced']),
            format_currency(totals['discrepancy']),
        ]
        for company, totals in discrepancy['company_breakdown'].items()
    ]

    return write_csv(output_path, DISCREPANCY_COMPANY_COLUMNS, rows)


def generate_json_report(report: Dict[str, Any], output_path: Optional[str] = None) -> str:
    """
    Generate the full JSON report.

    Args:
        report: Allocation report from build_allocation_report
        output_path: Optional output path for the JSON file

    Returns:
        Path to the generated JSON file, or empty string on error
    """
    if not output_path:
        output_path = _default_path(None, 'rent_allocation_detail', 'json')

    try:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(serialize_value(report), f, indent=2, ensure_ascii=False)

        logger.info(f"Generated JSON report: {output_path}")
        return output_path
    except (OSError, TypeError) as e:
        logger.error(f"Error generating JSON report: {str(e)}")
        return ""


def generate_reports(
    report: Dict[str, Any],
    output_dir: Optional[str] = None,
    timestamp: Optional[str] = None
) -> Dict[str, str]:
    """
    Generate every report for an allocation run.

    Args:
        report: Allocation report from build_allocation_report
        output_dir: Directory for the files (defaults to Output/Reports)
        timestamp: Suffix shared by the file names (defaults to now)

    Returns:
        Dictionary mapping report names to file paths
    """
    output_dir = output_dir or REPORTS_PATH
    if not timestamp:
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

    paths = {
        'month_window_csv': generate_month_window_csv(
            report, _default_path(output_dir, 'rent_allocation', 'csv', timestamp)
        ),
        'month_summary_csv': generate_month_summary_csv(
            report, _default_path(output_dir, 'rent_month_summary', 'csv', timestamp)
        ),
        'line_items_csv': generate_line_items_csv(
            report, _default_path(output_dir, 'rent_line_items', 'csv', timestamp)
        ),
        'json': generate_json_report(
            report, _default_path(output_dir, 'rent_allocation_detail', 'json', timestamp)
        ),
    }

    if report.get('discrepancy'):
        paths['discrepancy_csv'] = generate_discrepancy_csv(
            report['discrepancy'],
            _default_path(output_dir, f"rent_discrepancy_{report['discrepancy']['month']}", 'csv', timestamp)
        )
        paths['discrepancy_company_csv'] = generate_discrepancy_company_csv(
            report['discrepancy'],
            _default_path(
                output_dir, f"rent_discrepancy_companies_{report['discrepancy']['month']}", 'csv', timestamp
            )
        )

    logger.info(f"Generated {len(paths)} reports in {output_dir}")
    return paths
