"""
Read-only report projections.

Every view is a pure function over lists of model objects (or anything with
the same attributes) and returns a list of plain dict rows, recomputed on
each call. Sorting is single-key and stable; missing values sort as empty.
"""

import io
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from decimal import Decimal

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from distrifin.models import CollectionStatus, PaymentType

logger = logging.getLogger(__name__)

ASC = 'ASC'
DESC = 'DESC'

DAILY_COLUMNS = ['collection_date', 'customer_name', 'payment_type', 'amount', 'status',
                 'cheque_number', 'bank', 'realize_date']
CHEQUE_COLUMNS = ['status', 'cheque_number', 'bank', 'branch', 'realize_date', 'amount', 'customer_name']
ROUTE_COLUMNS = ['route_name', 'customer_count', 'total']

EXPORT_TITLES = {
    'collection_date': 'Date',
    'customer_name': 'Customer',
    'payment_type': 'Type',
    'amount': 'Amount',
    'status': 'Status',
    'cheque_number': 'Cheque No',
    'bank': 'Bank',
    'branch': 'Branch',
    'realize_date': 'Realize Date',
    'route_name': 'Route',
    'customer_count': 'Customers',
    'total': 'Total Collected',
}


class ReportError(Exception):
    """Custom exception for report operations"""
    pass


@dataclass(frozen=True)
class SortState:
    key: str
    order: str = ASC

    def toggle(self, key):
        """Same key flips the direction; a new key starts ascending"""
        if key == self.key:
            return SortState(key, DESC if self.order == ASC else ASC)
        return SortState(key, ASC)

    @classmethod
    def from_args(cls, key, order, default_key, default_order=ASC):
        order = (order or default_order).upper()
        if order not in (ASC, DESC):
            raise ReportError(f"Invalid sort order: {order}")
        return cls(key or default_key, order)


def _sort_value(value):
    if value is None:
        return (0, '')
    if isinstance(value, str):
        return (0, value.lower()) if value == '' else (1, value.lower())
    return (1, value)


def sort_rows(rows, sort_state, columns=None):
    if columns is not None and sort_state.key not in columns:
        raise ReportError(f"Cannot sort by {sort_state.key}")
    return sorted(rows, key=lambda row: _sort_value(row.get(sort_state.key)),
                  reverse=sort_state.order == DESC)


def _customer_names(customers):
    return {str(c.id): c.business_name for c in customers}


def _collection_row(collection, names):
    return {
        'collection_id': str(collection.id),
        'collection_date': collection.collection_date,
        'customer_id': collection.customer_id,
        'customer_name': names.get(collection.customer_id, ''),
        'payment_type': collection.payment_type,
        'amount': float(collection.amount),
        'status': collection.status,
        'cheque_number': collection.cheque_number,
        'bank': collection.bank,
        'branch': collection.branch,
        'realize_date': collection.realize_date,
    }


def daily_collections(collections, customers, sort_state=None):
    sort_state = sort_state or SortState('collection_date', DESC)
    names = _customer_names(customers)
    rows = [_collection_row(c, names) for c in collections]
    return sort_rows(rows, sort_state, DAILY_COLUMNS)


def cheques_by_status(collections, customers, status, sort_state=None):
    if status not in (CollectionStatus.PENDING.value, CollectionStatus.RETURNED.value,
                      CollectionStatus.REALIZED.value):
        raise ReportError(f"Invalid cheque status: {status}")
    sort_state = sort_state or SortState('realize_date', ASC)
    names = _customer_names(customers)
    rows = [
        _collection_row(c, names) for c in collections
        if c.payment_type == PaymentType.CHEQUE.value and c.status == status
    ]
    return sort_rows(rows, sort_state, CHEQUE_COLUMNS)


def cheque_register(collections, customers=(), ready_only=False, sort_state=None):
    """All cheques, or only those still pending and ready for bank deposit"""
    sort_state = sort_state or SortState('realize_date', DESC)
    names = _customer_names(customers)
    rows = []
    for collection in collections:
        if collection.payment_type != PaymentType.CHEQUE.value:
            continue
        if ready_only and collection.status != CollectionStatus.PENDING.value:
            continue
        rows.append(_collection_row(collection, names))
    return sort_rows(rows, sort_state, CHEQUE_COLUMNS)


def route_summary(routes, customers, collections, sort_state=None):
    """Lifetime customer count and collected total per route; soft-deleted customers are left out"""
    sort_state = sort_state or SortState('route_name', ASC)

    customers_by_route = defaultdict(set)
    for customer in customers:
        if getattr(customer, 'is_active', True) is False:
            continue
        customers_by_route[customer.route_id or ''].add(str(customer.id))

    totals = defaultdict(Decimal)
    for collection in collections:
        totals[collection.customer_id] += Decimal(str(collection.amount))

    rows = []
    for route in routes:
        members = customers_by_route.get(str(route.id), set())
        rows.append({
            'route_id': str(route.id),
            'route_name': route.route_name,
            'customer_count': len(members),
            'total': float(sum((totals[cid] for cid in members), Decimal('0'))),
        })
    return sort_rows(rows, sort_state, ROUTE_COLUMNS)


def dashboard_summary(collections, today=None):
    by_status = Counter()
    amount_by_type = defaultdict(Decimal)
    today_total = Decimal('0')
    pending_cheque_total = Decimal('0')

    for collection in collections:
        amount = Decimal(str(collection.amount))
        by_status[collection.status] += 1
        amount_by_type[collection.payment_type] += amount
        if today and collection.collection_date == today:
            today_total += amount
        if (collection.payment_type == PaymentType.CHEQUE.value
                and collection.status == CollectionStatus.PENDING.value):
            pending_cheque_total += amount

    return {
        'collection_count': len(collections),
        'count_by_status': {status.value: by_status.get(status.value, 0) for status in CollectionStatus},
        'amount_by_payment_type': {pt.value: float(amount_by_type.get(pt.value, 0)) for pt in PaymentType},
        'today_total': float(today_total),
        'pending_cheque_total': float(pending_cheque_total),
    }


def export_report_xlsx(title, rows, columns):
    """Write report rows to an in-memory workbook and return the bytes buffer"""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    border = Border(left=Side(style='thin'), right=Side(style='thin'),
                    top=Side(style='thin'), bottom=Side(style='thin'))

    for col_idx, column in enumerate(columns, 1):
        col_letter = openpyxl.utils.get_column_letter(col_idx)
        ws.column_dimensions[col_letter].width = 20

        cell = ws.cell(row=1, column=col_idx, value=EXPORT_TITLES.get(column, column))
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = border

    for row_idx, row in enumerate(rows, 2):
        for col_idx, column in enumerate(columns, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=row.get(column))
            cell.border = border
            if column in ('amount', 'total'):
                cell.number_format = '#,##0.00'

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    logger.info(f"Exported {len(rows)} rows to workbook '{title}'")
    return output
