"""
Report projections over plain in-memory records.
"""

from io import BytesIO
from types import SimpleNamespace

import openpyxl
import pytest

from distrifin.crud.report_crud import (
    ASC, DESC, ReportError, SortState, cheque_register, cheques_by_status, daily_collections,
    dashboard_summary, export_report_xlsx, route_summary, ROUTE_COLUMNS,
)


def make_collection(cid, customer_id, payment_type, amount, status, date='2025-02-01',
                    cheque_number=None, bank=None, realize_date=None):
    return SimpleNamespace(id=cid, customer_id=customer_id, payment_type=payment_type, amount=amount,
                           status=status, collection_date=date, cheque_number=cheque_number, bank=bank,
                           branch=None, realize_date=realize_date)


CUSTOMERS = [
    SimpleNamespace(id='C1', business_name='Acme Store', route_id='R1'),
    SimpleNamespace(id='C2', business_name='beta traders', route_id='R1'),
    SimpleNamespace(id='C3', business_name='Corner Mart', route_id='R2'),
    SimpleNamespace(id='C4', business_name='Drifter', route_id=''),
]

ROUTES = [
    SimpleNamespace(id='R1', route_name='North Loop'),
    SimpleNamespace(id='R2', route_name='South Loop'),
    SimpleNamespace(id='R3', route_name='East Loop'),
]

COLLECTIONS = [
    make_collection('K1', 'C1', 'Cash', 100, 'Received', date='2025-02-01'),
    make_collection('K2', 'C2', 'Cheque', 5000, 'Pending', date='2025-02-03',
                    cheque_number='001', bank='First Bank', realize_date='2025-03-01'),
    make_collection('K3', 'C3', 'Cheque', 700, 'Returned', date='2025-02-02',
                    cheque_number='002', bank=None, realize_date='2025-02-10'),
    make_collection('K4', 'C1', 'Cheque', 300, 'Pending', date='2025-02-02',
                    cheque_number='003', bank='Bank Two', realize_date='2025-02-20'),
    make_collection('K5', 'C4', 'QR', 50, 'Received', date='2025-02-03'),
    make_collection('K6', 'C3', 'Cheque', 900, 'Realized', date='2025-02-01',
                    cheque_number='004', bank='First Bank', realize_date='2025-02-05'),
]


class TestSortState:

    def test_same_key_flips_direction(self):
        assert SortState('amount', ASC).toggle('amount') == SortState('amount', DESC)
        assert SortState('amount', DESC).toggle('amount') == SortState('amount', ASC)

    def test_new_key_resets_to_ascending(self):
        assert SortState('amount', DESC).toggle('bank') == SortState('bank', ASC)

    def test_invalid_order_rejected(self):
        with pytest.raises(ReportError):
            SortState.from_args('amount', 'sideways', 'amount')


class TestDailyCollections:

    def test_default_newest_first_and_stable(self):
        rows = daily_collections(COLLECTIONS, CUSTOMERS)
        assert [r['collection_id'] for r in rows] == ['K2', 'K5', 'K3', 'K4', 'K1', 'K6']

    def test_customer_name_resolved_and_sorted_case_insensitively(self):
        rows = daily_collections(COLLECTIONS, CUSTOMERS, SortState('customer_name', ASC))
        assert [r['customer_name'] for r in rows] == [
            'Acme Store', 'Acme Store', 'beta traders', 'Corner Mart', 'Corner Mart', 'Drifter'
        ]

    def test_amount_descending(self):
        rows = daily_collections(COLLECTIONS, CUSTOMERS, SortState('amount', DESC))
        assert [r['amount'] for r in rows] == [5000, 900, 700, 300, 100, 50]

    def test_unknown_customer_shows_empty_name(self):
        rows = daily_collections([make_collection('X', 'GONE', 'Cash', 1, 'Received')], CUSTOMERS)
        assert rows[0]['customer_name'] == ''

    def test_unsortable_key_rejected(self):
        with pytest.raises(ReportError):
            daily_collections(COLLECTIONS, CUSTOMERS, SortState('password', ASC))


class TestChequeViews:

    def test_pending_cheques_by_realize_date(self):
        rows = cheques_by_status(COLLECTIONS, CUSTOMERS, 'Pending')
        assert [r['collection_id'] for r in rows] == ['K4', 'K2']

    def test_returned_cheques(self):
        rows = cheques_by_status(COLLECTIONS, CUSTOMERS, 'Returned')
        assert [r['cheque_number'] for r in rows] == ['002']

    def test_invalid_status_rejected(self):
        with pytest.raises(ReportError):
            cheques_by_status(COLLECTIONS, CUSTOMERS, 'Received')

    def test_register_lists_every_cheque_newest_realize_date_first(self):
        rows = cheque_register(COLLECTIONS, CUSTOMERS)
        assert [r['collection_id'] for r in rows] == ['K2', 'K4', 'K3', 'K6']

    def test_deposit_ready_lists_only_pending(self):
        rows = cheque_register(COLLECTIONS, CUSTOMERS, ready_only=True)
        assert {r['status'] for r in rows} == {'Pending'}
        assert len(rows) == 2

    def test_missing_bank_sorts_as_empty(self):
        rows = cheque_register(COLLECTIONS, CUSTOMERS, sort_state=SortState('bank', ASC))
        assert rows[0]['collection_id'] == 'K3'


class TestRouteSummary:

    def test_lifetime_counts_and_totals(self):
        rows = route_summary(ROUTES, CUSTOMERS, COLLECTIONS)
        by_route = {r['route_id']: r for r in rows}

        assert by_route['R1']['customer_count'] == 2
        assert by_route['R1']['total'] == 5400
        assert by_route['R2']['customer_count'] == 1
        assert by_route['R2']['total'] == 1600
        assert by_route['R3'] == {'route_id': 'R3', 'route_name': 'East Loop', 'customer_count': 0, 'total': 0}

    def test_soft_deleted_customers_not_counted(self):
        customers = CUSTOMERS + [SimpleNamespace(id='C5', business_name='Gone', route_id='R2', is_active=False)]
        collections = COLLECTIONS + [make_collection('K7', 'C5', 'Cash', 40, 'Received')]

        by_route = {r['route_id']: r for r in route_summary(ROUTES, customers, collections)}

        assert by_route['R2']['customer_count'] == 1
        assert by_route['R2']['total'] == 1600

    def test_sorted_by_total(self):
        rows = route_summary(ROUTES, CUSTOMERS, COLLECTIONS, SortState('total', DESC))
        assert [r['route_name'] for r in rows] == ['North Loop', 'South Loop', 'East Loop']

    def test_idempotent(self):
        assert route_summary(ROUTES, CUSTOMERS, COLLECTIONS) == route_summary(ROUTES, CUSTOMERS, COLLECTIONS)


class TestDashboardAndExport:

    def test_dashboard_summary(self):
        summary = dashboard_summary(COLLECTIONS, today='2025-02-03')
        assert summary['collection_count'] == 6
        assert summary['count_by_status'] == {'Received': 2, 'Pending': 2, 'Realized': 1, 'Returned': 1}
        assert summary['amount_by_payment_type']['Cheque'] == 6900
        assert summary['today_total'] == 5050
        assert summary['pending_cheque_total'] == 5300

    def test_xlsx_export_has_header_and_rows(self):
        rows = route_summary(ROUTES, CUSTOMERS, COLLECTIONS)
        output = export_report_xlsx('Route Summary', rows, ROUTE_COLUMNS)

        ws = openpyxl.load_workbook(BytesIO(output.getvalue())).active
        assert ws.title == 'Route Summary'
        assert [c.value for c in ws[1]] == ['Route', 'Customers', 'Total Collected']
        assert ws.max_row == len(rows) + 1
        assert ws.cell(row=1, column=1).font.bold
