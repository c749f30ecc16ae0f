#!/usr/bin/env python3
"""
Tests for the allocation, report_generator modules and the command line entry point.
"""

import os
import csv
import json
import logging
import unittest
from unittest import mock
import tempfile
import shutil
import datetime
from decimal import Decimal

# Add the parent directory to the path so we can import the module
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rent_allocation.utils.helpers import MONEY_QUANTIZE
from rent_allocation.allocation import build_allocation_report, allocate_employee, main
from rent_allocation.period_calculator import generate_months
from rent_allocation.employee_matcher import find_employee_invoices
from rent_allocation.report_generator import (
    EMPLOYEE_COLUMNS,
    DISCREPANCY_COLUMNS,
    DISCREPANCY_COMPANY_COLUMNS,
    write_csv,
    generate_reports,
)


def make_invoice(number, employee_id, amount, start, end, status='pending', names=None):
    """Build a normalized invoice record."""
    return {
        'id': number.lower(),
        'invoice_number': number,
        'employee_id': employee_id,
        'employee_names': names or [],
        'amount': Decimal(amount),
        'start_date': start,
        'end_date': end,
        'status': status,
        'is_paid': status == 'paid',
        'is_issued': None,
        'description': '',
        'type': '',
        'notes': '',
        'receipt_urls': [],
    }


def build_records():
    """Employees and invoices shared by the tests."""
    employees = [
        {'id': 'E1', 'name': '陳大文', 'company': 'Acme', 'contract_number': 'C-01',
         'status': 'housed', 'monthly_rent': Decimal('3500')},
        {'id': 'E2', 'name': '李四', 'company': 'Beta', 'contract_number': 'C-02',
         'status': 'housed', 'monthly_rent': None},
        {'id': 'E3', 'name': 'Ann', 'company': 'Beta', 'contract_number': 'C-03',
         'status': 'resigned', 'monthly_rent': Decimal('3500')},
    ]
    invoices = [
        make_invoice('D100-0001', 'E1', '3500', datetime.date(2025, 8, 15), datetime.date(2025, 9, 14), 'paid'),
        make_invoice('D100-A001', 'E1', '3500', datetime.date(2025, 8, 15), datetime.date(2025, 9, 14), 'paid'),
        make_invoice('D100-0002', None, '7000', datetime.date(2025, 9, 1), datetime.date(2025, 9, 30), names=['李四']),
        make_invoice('D100-0003', 'E2', '3500', datetime.date(2025, 9, 1), datetime.date(2025, 9, 30), 'paid'),
        make_invoice('D100-0004', 'E2', '3500', datetime.date(2025, 10, 1), datetime.date(2025, 10, 15)),
    ]
    return employees, invoices


class TestAllocationReport(unittest.TestCase):
    """Test cases for the full allocation pipeline."""

    def setUp(self):
        """Set up test fixtures."""
        self.employees, self.invoices = build_records()
        self.reference_date = datetime.date(2025, 8, 15)
        self.report = build_allocation_report(self.employees, self.invoices, self.reference_date)

    def get_result(self, employee_id):
        return [r for r in self.report['employees'] if r['employee']['id'] == employee_id][0]

    def test_window_and_employees(self):
        """Test the default window and the rent payer selection."""
        self.assertEqual(len(self.report['months']), 12)
        self.assertEqual(self.report['months'][3]['key'], '2025-08')
        self.assertEqual([r['employee']['id'] for r in self.report['employees']], ['E1', 'E2'])

    def test_prorated_months(self):
        """Test the August 15 to September 14 invoice end to end."""
        e1 = self.get_result('E1')

        self.assertEqual(e1['months']['2025-08']['amount'].quantize(MONEY_QUANTIZE), Decimal('1919.35'))
        self.assertEqual(e1['months']['2025-09']['amount'].quantize(MONEY_QUANTIZE), Decimal('1633.33'))
        self.assertEqual(e1['months']['2025-05']['amount'], Decimal('0'))
        # The deposit is not counted
        self.assertEqual(e1['invoice_count'], 1)
        self.assertEqual(e1['unresolved_excess'], Decimal('0'))

    def test_capped_employee(self):
        """Test capping with the default rent and a redistribution shortfall."""
        e2 = self.get_result('E2')
        september = e2['months']['2025-09']
        october = e2['months']['2025-10']

        self.assertTrue(e2['uses_default_rent'])
        self.assertEqual(e2['effective_rent'], Decimal('3500'))
        self.assertTrue(september['was_capped'])
        self.assertEqual(september['amount'], Decimal('3500'))
        self.assertEqual(september['original_amount'], Decimal('7000'))
        self.assertEqual(october['amount'], Decimal('3500'))
        self.assertEqual(e2['capped_months'], ['2025-09'])
        self.assertEqual(e2['donor_months'], ['2025-10'])

        expected_unresolved = Decimal('3500') - (Decimal('3500') - Decimal('15') / Decimal('31') * Decimal('3500'))
        self.assertAlmostEqual(e2['unresolved_excess'], expected_unresolved, places=6)
        self.assertAlmostEqual(
            e2['total_allocated'] + e2['unresolved_excess'], e2['total_original'], places=6
        )

    def test_summary_consistency(self):
        """Test that paid plus unpaid equals the month total."""
        for key, summary in self.report['month_summaries'].items():
            self.assertAlmostEqual(summary['paid'] + summary['unpaid'], summary['total'], places=6)

        august = self.report['month_summaries']['2025-08']
        self.assertEqual(august['total'].quantize(MONEY_QUANTIZE), Decimal('1919.35'))
        self.assertEqual(august['paid'], august['total'])
        self.assertEqual(self.report['current_month_metrics']['collection_rate'], Decimal('100.00'))

        breakdown = self.report['company_breakdown']
        self.assertEqual(list(breakdown), ['Acme', 'Beta'])
        self.assertEqual(breakdown['Beta']['2025-09']['total'], Decimal('3500'))

    def test_warnings(self):
        """Test the data quality warnings."""
        self.assertGreater(self.report['unresolved_excess_total'], 0)
        self.assertTrue(any('E2' in warning for warning in self.report['warnings']))
        self.assertTrue(any('default rent' in warning for warning in self.report['warnings']))

    def test_discrepancy(self):
        """Test the reference month discrepancy check."""
        discrepancy = self.report['discrepancy']

        self.assertEqual(discrepancy['month'], '2025-08')
        self.assertEqual(discrepancy['theoretical_rent'], Decimal('3500'))
        self.assertEqual(discrepancy['invoiced_rent'], Decimal('3500'))
        self.assertEqual(discrepancy['engine_total'], self.report['month_summaries']['2025-08']['total'])

        reasons = {row['employee_id']: row['reason'] for row in discrepancy['employees']}
        self.assertEqual(reasons, {'E1': 'Match', 'E2': 'No Invoice'})

    def test_discrepancy_month_option(self):
        """Test checking a different month."""
        report = build_allocation_report(
            self.employees, self.invoices, self.reference_date, discrepancy_month='2025-09'
        )

        self.assertEqual(report['discrepancy']['month'], '2025-09')
        self.assertEqual(report['discrepancy']['invoiced_rent'], Decimal('14000'))
        # Invoiced more than the contracted rent
        self.assertEqual(report['discrepancy']['difference'], Decimal('-10500'))

    def test_all_statuses_and_settings(self):
        """Test reporting every employee with a custom window."""
        report = build_allocation_report(
            self.employees, self.invoices, self.reference_date,
            settings={'months_before': 0, 'months_after': 2}, include_all_statuses=True
        )

        self.assertEqual(len(report['employees']), 3)
        self.assertEqual([month['key'] for month in report['months']], ['2025-08', '2025-09', '2025-10'])

    def test_allocate_employee(self):
        """Test the single employee pipeline."""
        months = generate_months(self.reference_date, 0, 1)
        result = allocate_employee(self.employees[0], self.invoices, months)

        self.assertEqual(result['employee']['contract'], 'C-01')
        self.assertEqual(list(result['months']), ['2025-08', '2025-09'])
        self.assertFalse(result['uses_default_rent'])

    def test_invoices_matched_once(self):
        """Test that an employee's invoices are matched in a single pass."""
        months = generate_months(self.reference_date, 0, 1)

        with mock.patch(
            'rent_allocation.calculations.monthly_aggregator.find_employee_invoices',
            wraps=find_employee_invoices
        ) as matcher:
            result = allocate_employee(self.employees[0], self.invoices, months)

        self.assertEqual(matcher.call_count, 1)
        self.assertEqual(result['invoice_count'], 1)
        self.assertEqual(len(result['months']['2025-08']['line_items']), 1)


class TestReportGenerator(unittest.TestCase):
    """Test cases for the report files."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()
        employees, invoices = build_records()
        self.report = build_allocation_report(employees, invoices, datetime.date(2025, 8, 15))

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.test_dir)

    def read_csv(self, path):
        with open(path, 'r', encoding='utf-8-sig', newline='') as f:
            return list(csv.reader(f))

    def test_generate_reports(self):
        """Test writing every report."""
        paths = generate_reports(self.report, self.test_dir, timestamp='test')

        self.assertEqual(
            sorted(paths),
            ['discrepancy_company_csv', 'discrepancy_csv', 'json', 'line_items_csv',
             'month_summary_csv', 'month_window_csv']
        )
        for path in paths.values():
            self.assertTrue(os.path.exists(path))

        with open(paths['month_window_csv'], 'rb') as f:
            self.assertTrue(f.read().startswith(b'\xef\xbb\xbf'))

        rows = self.read_csv(paths['month_window_csv'])
        self.assertEqual(rows[0][:6], EMPLOYEE_COLUMNS)
        self.assertEqual(rows[0][6], '5月-2025')
        self.assertEqual(rows[1][0], 'E1')
        self.assertEqual(rows[1][5], '3,500.00')
        self.assertEqual(rows[1][6 + 3], '1,919.35')

        summary_rows = self.read_csv(paths['month_summary_csv'])
        self.assertEqual(len(summary_rows), 13)
        self.assertEqual(summary_rows[4][0], '8月-2025')
        self.assertEqual(summary_rows[4][1], '1,919.35')

        discrepancy_rows = self.read_csv(paths['discrepancy_csv'])
        self.assertEqual(discrepancy_rows[0], DISCREPANCY_COLUMNS)
        self.assertEqual(discrepancy_rows[1][7], 'Match')

        company_rows = self.read_csv(paths['discrepancy_company_csv'])
        self.assertEqual(company_rows[0], DISCREPANCY_COMPANY_COLUMNS)
        self.assertEqual(company_rows[1], ['Acme', '1', '3,500.00', '3,500.00', '0.00'])
        self.assertEqual(company_rows[2], ['Beta', '1', '0.00', '0.00', '0.00'])

        line_rows = self.read_csv(paths['line_items_csv'])
        self.assertTrue(any(row[9] == '是' for row in line_rows[1:]))

        with open(paths['json'], 'r', encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual(len(data['months']), 12)
        self.assertEqual(data['reference_date'], '2025-08-15')
        self.assertAlmostEqual(data['employees'][0]['months']['2025-08']['amount'], 1919.35, places=2)

    def test_minimal_quoting(self):
        """Test that only fields with separators, quotes or line breaks are quoted."""
        path = write_csv(
            os.path.join(self.test_dir, 'quoting.csv'),
            ['名稱', '備註'],
            [['a,b', 'say "hi"'], ['line\nbreak', 'plain']]
        )

        with open(path, 'r', encoding='utf-8-sig', newline='') as f:
            content = f.read()

        self.assertIn('"a,b","say ""hi"""', content)
        self.assertIn('"line\nbreak",plain', content)
        self.assertTrue(content.startswith('名稱,備註\n'))


class TestCommandLine(unittest.TestCase):
    """Test cases for the command line entry point."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()
        self.output_dir = os.path.join(self.test_dir, 'Reports')
        self.export_path = os.path.join(self.test_dir, 'export.json')
        self.settings_path = os.path.join(self.test_dir, 'settings.json')
        self.snapshot_path = os.path.join(self.test_dir, 'snapshots.json')
        self.root_handlers = list(logging.getLogger().handlers)

        with open(self.export_path, 'w', encoding='utf-8') as f:
            json.dump({
                'employees': [
                    {'id': 'E1', 'name': '陳大文', 'status': 'housed', 'rent': '3,500', 'company': 'Acme'},
                ],
                'invoices': [
                    {'id': 'I1', 'invoiceNumber': 'D100-0001', 'employeeId': 'E1', 'amount': 3500,
                     'startDate': '2025-08-15', 'endDate': '2025-09-14', 'status': 'paid'},
                ],
            }, f, ensure_ascii=False)

        with open(self.settings_path, 'w', encoding='utf-8') as f:
            json.dump({'snapshot_path': self.snapshot_path}, f)

    def tearDown(self):
        """Tear down test fixtures."""
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler not in self.root_handlers:
                handler.close()
                root.removeHandler(handler)
        shutil.rmtree(self.test_dir)

    def test_main(self):
        """Test a full command line run with a snapshot."""
        exit_code = main([
            '--employees', self.export_path,
            '--reference-date', '2025-08-15',
            '--output-dir', self.output_dir,
            '--settings', self.settings_path,
            '--snapshot',
        ])

        self.assertEqual(exit_code, 0)
        csv_files = [name for name in os.listdir(self.output_dir) if name.endswith('.csv')]
        self.assertEqual(len(csv_files), 5)

        with open(self.snapshot_path, 'r', encoding='utf-8') as f:
            snapshots = json.load(f)
        self.assertEqual(snapshots['2025-08']['data']['actual_received_rent'], 3500.0)

    def test_main_missing_file(self):
        """Test that errors are reported through the exit code."""
        exit_code = main([
            '--employees', os.path.join(self.test_dir, 'missing.json'),
            '--output-dir', self.output_dir,
        ])

        self.assertEqual(exit_code, 1)


if __name__ == "__main__":
    unittest.main()
