#!/usr/bin/env python3
"""
Rent Allocation Engine

This is the main entry point of the rent allocation process. It:
1. Loads settings and the exported employee and invoice records
2. Builds the reporting month window around a reference date
3. Prorates each employee's invoices into monthly rent
4. Caps each month at the employee's rent and redistributes the excess
5. Summarizes the results per month and company and checks them against
   the invoiced amounts
6. Writes CSV and JSON reports and, on request, a monthly snapshot

Usage:
    rent-allocation --employees employees.json --invoices invoices.json
    rent-allocation --employees export.json --reference-date 2025-08-15 --snapshot
"""

import os
import sys
import logging
import argparse
import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional

from rent_allocation.utils.helpers import parse_date
from rent_allocation.settings_loader import load_settings, resolve_settings, get_default_rent, get_month_window
from rent_allocation.record_loader import load_snapshot
from rent_allocation.period_calculator import generate_months, get_month_info, get_month_for_date
from rent_allocation.employee_filters import get_housed_employees
from rent_allocation.employee_matcher import find_ambiguous_invoices, get_employee_name
from rent_allocation.calculations.monthly_aggregator import aggregate, get_eligible_invoices
from rent_allocation.calculations.caps import cap_and_redistribute
from rent_allocation.calculations.summaries import summarize
from rent_allocation.payment_tracker import get_current_month_metrics, get_month_over_month_changes
from rent_allocation.report_generator import generate_reports
from rent_allocation.snapshot_updater import create_monthly_snapshot, load_snapshots, save_snapshots, get_snapshot_path

# Configure logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def summarize_employee(employee: Dict[str, Any]) -> Dict[str, Any]:
    """Return the identifying fields of an employee shown in reports."""
    return {
        'id': employee.get('id'),
        'name': get_employee_name(employee),
        'company': employee.get('company') or '',
        'contract': employee.get('contract_number') or '',
        'status': employee.get('status') or '',
    }


def allocate_employee(
    employee: Dict[str, Any],
    invoices: List[Dict[str, Any]],
    months: List[Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Run the allocation pipeline for one employee.

    Args:
        employee: Employee record
        invoices: Invoice records
        months: Month dictionaries of the reporting window
        settings: Settings dictionary

    Returns:
        Dictionary with the employee summary, rents, finalized months and
        the cap pass totals
    """
    default_rent = get_default_rent(settings)
    monthly_rent = employee.get('monthly_rent')
    uses_default_rent = not monthly_rent or monthly_rent <= 0

    if uses_default_rent:
        logger.info(
            f"Employee {employee.get('id')} ({get_employee_name(employee)}) has no rent on file, "
            f"using default rent {default_rent}"
        )

    eligible = get_eligible_invoices(employee, invoices, settings)
    allocations = aggregate(employee, invoices, months, settings, eligible=eligible)
    cap_results = cap_and_redistribute(allocations, monthly_rent, default_rent)
    finalized = cap_results['months']

    total_original = sum((month['original_amount'] for month in finalized.values()), Decimal('0'))
    total_allocated = sum((month['amount'] for month in finalized.values()), Decimal('0'))

    return {
        'employee': summarize_employee(employee),
        'monthly_rent': monthly_rent,
        'effective_rent': cap_results['rent_cap'],
        'uses_default_rent': uses_default_rent,
        'months': finalized,
        'total_original': total_original,
        'total_allocated': total_allocated,
        'total_excess': cap_results['total_excess'],
        'redistributed_total': cap_results['redistributed_total'],
        'unresolved_excess': cap_results['unresolved_excess'],
        'capped_months': cap_results['capped_months'],
        'donor_months': cap_results['donor_months'],
        'invoice_count': len(eligible),
    }


def build_allocation_report(
    employees: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    reference_date: Optional[datetime.date] = None,
    settings: Optional[Dict[str, Any]] = None,
    include_all_statuses: bool = False,
    discrepancy_month: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the complete allocation report.

    Args:
        employees: Normalized employee records
        invoices: Normalized invoice records
        reference_date: Date anchoring the month window (defaults to today)
        settings: Settings dictionary
        include_all_statuses: Report every employee instead of rent payers only
        discrepancy_month: YYYY-MM month for the discrepancy check (defaults to
            the reference month)

    Returns:
        Dictionary with months, employees, month_summaries, company_breakdown,
        totals, discrepancy, current_month_metrics, month_over_month,
        ambiguous_invoices, unresolved_excess_total and warnings
    """
    settings = resolve_settings(settings)
    if reference_date is None:
        reference_date = datetime.date.today()

    months_before, months_after = get_month_window(settings)
    months = generate_months(reference_date, months_before, months_after)

    selected = list(employees) if include_all_statuses else get_housed_employees(employees, settings)

    logger.info(f"Allocating rent for {len(selected)} employees and {len(invoices)} invoices")

    results = [allocate_employee(employee, invoices, months, settings) for employee in selected]

    check_month = get_month_info(discrepancy_month) if discrepancy_month else get_month_for_date(reference_date)
    summaries = summarize(
        results,
        months,
        employees=employees,
        invoices=invoices,
        discrepancy_month=check_month,
        settings=settings
    )

    warnings = []
    unresolved_excess_total = Decimal('0')

    for result in results:
        if result['unresolved_excess'] > 0:
            unresolved_excess_total += result['unresolved_excess']
            warnings.append(
                f"Employee {result['employee']['id']} ({result['employee']['name']}): "
                f"{result['unresolved_excess']} excess rent could not be redistributed"
            )

    default_rent_count = sum(1 for result in results if result['uses_default_rent'])
    if default_rent_count:
        warnings.append(f"{default_rent_count} employees have no rent on file; default rent used")

    ambiguous = find_ambiguous_invoices(invoices, selected)
    for item in ambiguous:
        warnings.append(
            f"Invoice {item['invoice_number']} matches several employees: "
            f"{', '.join(str(employee_id) for employee_id in item['employee_ids'])}"
        )

    current_key = get_month_for_date(reference_date)['key']

    report = {
        'reference_date': reference_date,
        'months': months,
        'employees': results,
        'month_summaries': summaries['month_summaries'],
        'company_breakdown': summaries['company_breakdown'],
        'totals': summaries['totals'],
        'discrepancy': summaries['discrepancy'],
        'current_month_metrics': get_current_month_metrics(summaries['month_summaries'].get(current_key)),
        'month_over_month': get_month_over_month_changes(summaries['month_summaries']),
        'ambiguous_invoices': ambiguous,
        'unresolved_excess_total': unresolved_excess_total,
        'warnings': warnings,
    }

    logger.info(
        f"Allocation complete: {len(results)} employees, window total {summaries['totals']['total']}, "
        f"{len(warnings)} warnings"
    )

    return report


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Employee Rent Allocation Engine')

    parser.add_argument(
        '--employees',
        type=str,
        required=True,
        help='JSON export of the employees collection (may also hold the invoices)'
    )
    parser.add_argument(
        '--invoices',
        type=str,
        help='JSON export of the invoices collection (defaults to the employees file)'
    )
    parser.add_argument(
        '--reference-date',
        type=str,
        help='Date anchoring the month window, YYYY-MM-DD (defaults to today)'
    )
    parser.add_argument(
        '--months-before',
        type=int,
        help='Months shown before the reference month'
    )
    parser.add_argument(
        '--months-after',
        type=int,
        help='Months shown after the reference month'
    )
    parser.add_argument(
        '--discrepancy-month',
        type=str,
        help='Month to check against invoiced amounts, YYYY-MM (defaults to the reference month)'
    )
    parser.add_argument(
        '--settings',
        type=str,
        help='Settings JSON file'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        help='Directory for output reports'
    )
    parser.add_argument(
        '--all-statuses',
        action='store_true',
        help='Report every employee instead of rent payers only'
    )
    parser.add_argument(
        '--snapshot',
        action='store_true',
        help='Record a snapshot of the reference month'
    )
    parser.add_argument(
        '--overwrite-snapshot',
        action='store_true',
        help='Replace an existing snapshot of the reference month'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def configure_logging(output_dir: str, verbose: bool = False) -> None:
    """Log to stdout and to allocation.log in the output directory."""
    os.makedirs(output_dir, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(os.path.join(output_dir, 'allocation.log'), encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the rent allocation process."""
    args = parse_arguments(argv)

    overrides = {}
    if args.months_before is not None:
        overrides['months_before'] = args.months_before
    if args.months_after is not None:
        overrides['months_after'] = args.months_after
    if args.output_dir:
        overrides['output_dir'] = args.output_dir

    settings = load_settings(args.settings, overrides)
    configure_logging(settings['output_dir'], args.verbose)

    try:
        start_time = datetime.datetime.now()

        reference_date = None
        if args.reference_date:
            reference_date = parse_date(args.reference_date)
            if reference_date is None:
                raise ValueError(f"Invalid reference date: {args.reference_date}")

        records = load_snapshot(args.employees, args.invoices, settings)

        report = build_allocation_report(
            records['employees'],
            records['invoices'],
            reference_date=reference_date,
            settings=settings,
            include_all_statuses=args.all_statuses,
            discrepancy_month=args.discrepancy_month
        )

        paths = generate_reports(report, settings['output_dir'])

        snapshot_result = None
        if args.snapshot:
            snapshot_path = get_snapshot_path(settings)
            snapshots = load_snapshots(snapshot_path)
            snapshot_result = create_monthly_snapshot(
                records['employees'],
                records['invoices'],
                get_month_for_date(report['reference_date']),
                snapshots=snapshots,
                settings=settings,
                overwrite=args.overwrite_snapshot
            )
            if snapshot_result['success']:
                save_snapshots(snapshots, snapshot_path)

        elapsed_time = (datetime.datetime.now() - start_time).total_seconds()
        metrics = report['current_month_metrics']

        print("\n" + "=" * 80)
        print(f"RENT ALLOCATION COMPLETE - {elapsed_time:.2f}s")
        print("=" * 80)
        print(f"Window: {report['months'][0]['key']} to {report['months'][-1]['key']}")
        print(f"Employees: {len(report['employees'])}")
        print(f"Receivable this month: {metrics['total_receivable_rent']:.2f}")
        print(f"Received this month: {metrics['received_rent']:.2f} ({metrics['collection_rate']}%)")

        print("\nReports Generated:")
        for name, path in paths.items():
            print(f"- {name}: {path}")

        if snapshot_result:
            print(f"\nSnapshot: {snapshot_result['message']}")

        if report['warnings']:
            print(f"\nWarnings ({len(report['warnings'])}):")
            for warning in report['warnings']:
                print(f"- {warning}")

        print("=" * 80 + "\n")

        return 0

    except Exception as e:
        logger.exception(f"Error during rent allocation: {str(e)}")
        print(f"\nERROR: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
