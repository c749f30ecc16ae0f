#!/usr/bin/env python3
"""
Tests for the snapshot_updater module.
"""

import os
import unittest
import tempfile
import shutil
import datetime
from decimal import Decimal

# Add the parent directory to the path so we can import the module
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rent_allocation.snapshot_updater import (
    calculate_monthly_snapshot,
    validate_snapshot_data,
    create_monthly_snapshot,
    update_snapshots,
    load_snapshots,
    save_snapshots,
    generate_snapshot_comparisons,
)


class TestSnapshotUpdater(unittest.TestCase):
    """Test cases for the snapshot_updater module."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()
        self.snapshot_path = os.path.join(self.test_dir, 'Data', 'monthly_snapshots.json')
        self.settings = {'snapshot_path': self.snapshot_path}

        self.employees = [
            {'id': 'E1', 'name': '陳大文', 'status': 'housed', 'monthly_rent': Decimal('3500')},
            {'id': 'E2', 'name': '李四', 'status': 'housed', 'monthly_rent': Decimal('3000')},
            {'id': 'E3', 'name': 'Ann', 'status': 'resigned', 'monthly_rent': Decimal('3500')},
        ]
        self.invoices = [
            self.make_invoice('D100-0001', 'E1', '3500', is_paid=True),
            self.make_invoice('D100-0002', 'E2', '3000', is_paid=False),
            self.make_invoice('D100-A001', 'E2', '3000', is_paid=True),
            self.make_invoice('D100-0003', 'E2', '3000', is_paid=True,
                              start=datetime.date(2025, 9, 1), end=datetime.date(2025, 9, 30)),
        ]

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.test_dir)

    def make_invoice(self, number, employee_id, amount, is_paid,
                     start=datetime.date(2025, 8, 1), end=datetime.date(2025, 8, 31)):
        """Build a normalized invoice record."""
        return {
            'id': number.lower(),
            'invoice_number': number,
            'employee_id': employee_id,
            'employee_names': [],
            'amount': Decimal(amount),
            'start_date': start,
            'end_date': end,
            'status': 'paid' if is_paid else 'pending',
            'is_paid': is_paid,
            'is_issued': True,
        }

    def test_calculate_monthly_snapshot(self):
        """Test the snapshot figures of a month."""
        data = calculate_monthly_snapshot(self.employees, self.invoices, '2025-08', property_costs='12000')

        self.assertEqual(data['total_rent_cost'], Decimal('12000'))
        self.assertEqual(data['total_receivable_rent'], Decimal('6500'))
        self.assertEqual(data['actual_received_rent'], Decimal('3500'))
        self.assertEqual(data['number_of_employees'], 2)
        self.assertEqual(data['collection_rate'], Decimal('53.85'))

    def test_validate_snapshot_data(self):
        """Test the data quality checks."""
        self.assertTrue(validate_snapshot_data({
            'total_rent_cost': 0, 'total_receivable_rent': 6500,
            'actual_received_rent': 3500, 'number_of_employees': 2
        })['is_valid'])

        result = validate_snapshot_data({
            'total_rent_cost': -1, 'total_receivable_rent': 1000,
            'actual_received_rent': 1200, 'number_of_employees': 0
        })
        self.assertFalse(result['is_valid'])
        self.assertEqual(len(result['issues']), 3)

    def test_create_and_overwrite(self):
        """Test creating a snapshot and refusing to overwrite it by default."""
        snapshots = {}

        first = create_monthly_snapshot(self.employees, self.invoices, '2025-08', snapshots=snapshots)
        self.assertTrue(first['success'])
        self.assertEqual(first['snapshot_id'], '2025-08')
        self.assertEqual(snapshots['2025-08']['data']['actual_received_rent'], 3500.0)
        self.assertEqual(snapshots['2025-08']['month'], 8)

        second = create_monthly_snapshot(self.employees, [], '2025-08', snapshots=snapshots)
        self.assertFalse(second['success'])
        self.assertEqual(snapshots['2025-08']['data']['actual_received_rent'], 3500.0)

        third = create_monthly_snapshot(self.employees, [], '2025-08', snapshots=snapshots, overwrite=True)
        self.assertTrue(third['success'])
        self.assertEqual(snapshots['2025-08']['data']['actual_received_rent'], 0.0)

    def test_save_and_load(self):
        """Test persisting the snapshot history."""
        result = update_snapshots(
            self.employees, self.invoices, ['2025-08', '2025-09'], settings=self.settings
        )

        self.assertEqual(result['created'], ['2025-08', '2025-09'])
        self.assertTrue(result['success'])
        self.assertTrue(os.path.exists(self.snapshot_path))

        loaded = load_snapshots(self.snapshot_path)
        self.assertEqual(sorted(loaded), ['2025-08', '2025-09'])
        self.assertEqual(loaded['2025-09']['data']['actual_received_rent'], 3000.0)

        again = update_snapshots(self.employees, self.invoices, ['2025-08'], settings=self.settings)
        self.assertEqual(again['skipped'], ['2025-08'])

    def test_missing_history(self):
        """Test that a missing history loads as empty."""
        self.assertEqual(load_snapshots(os.path.join(self.test_dir, 'missing.json')), {})
        self.assertTrue(save_snapshots({}, os.path.join(self.test_dir, 'empty.json')))

    def test_comparisons(self):
        """Test month-over-month comparisons, newest first."""
        snapshots = {
            '2025-07': {'id': '2025-07', 'data': {
                'total_receivable_rent': 0, 'actual_received_rent': 0,
                'collection_rate': 0, 'number_of_employees': 0}},
            '2025-08': {'id': '2025-08', 'data': {
                'total_receivable_rent': 6000, 'actual_received_rent': 3000,
                'collection_rate': 50, 'number_of_employees': 2}},
            '2025-09': {'id': '2025-09', 'data': {
                'total_receivable_rent': 6500, 'actual_received_rent': 3900,
                'collection_rate': 60, 'number_of_employees': 3}},
        }

        comparisons = generate_snapshot_comparisons(snapshots)

        self.assertEqual(len(comparisons), 2)
        self.assertEqual(comparisons[0]['current_period'], '2025-09')
        self.assertEqual(comparisons[0]['previous_period'], '2025-08')
        self.assertEqual(comparisons[0]['changes']['total_receivable_rent'], Decimal('8.33'))
        self.assertEqual(comparisons[0]['changes']['actual_received_rent'], Decimal('30.00'))
        self.assertEqual(comparisons[0]['changes']['collection_rate'], Decimal('10'))
        self.assertEqual(comparisons[0]['changes']['number_of_employees'], 1)
        # From nothing to something counts as 100%
        self.assertEqual(comparisons[1]['changes']['total_receivable_rent'], Decimal('100'))

        self.assertEqual(generate_snapshot_comparisons([]), [])


if __name__ == "__main__":
    unittest.main()
