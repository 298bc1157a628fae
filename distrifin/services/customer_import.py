"""
Customer bulk import.

Turns a loosely formatted CSV export into Customer records. Header names are
matched after normalisation; when a header is missing the value is taken from
a fixed column position so headerless or half-labelled exports still load.
"""

import logging
import re
import time
from decimal import Decimal, InvalidOperation

from distrifin.models import Customer, CustomerStatus
from distrifin.utils.csv_utils import (
    guess_delimiter, header_index, normalize_header, parse_csv_line, split_lines, value_at
)

logger = logging.getLogger(__name__)

HEADER_CANDIDATES = {
    'business_name': ['business_name', 'business name', 'shop/business name', 'shop name', 'shop'],
    'customer_name': ['customer_name', 'customer name', 'name'],
    'phone_number': ['phone_number', 'phone number', 'phone', 'mobile', 'mobile number'],
    'address': ['residential address', 'address'],
    'whatsapp_number': ['whatsapp number', 'whatsapp', 'whatsapp_number'],
    'credit_limit': ['credit limit ($)', 'credit limit', 'credit_limit'],
    'credit_period_days': ['credit period (days)', 'credit period', 'credit_period_days'],
    'route': ['assigned route', 'assigned_route', 'route', 'route id', 'route_id', 'route name'],
}

# Column used when the header is not recognised; None means no fallback
POSITIONAL_FALLBACK = {
    'business_name': 0,
    'customer_name': 1,
    'route': 2,
    'phone_number': 3,
    'whatsapp_number': 6,
    'address': 7,
    'credit_limit': None,
    'credit_period_days': None,
}


class CustomerImportError(Exception):
    """Raised when an import file yields no importable customers"""
    pass


def resolve_route_id(raw, routes):
    """Route id as given, else the id of the route with that name, else the raw value"""
    value = (raw or '').strip()
    if not value:
        return ''
    if any(str(r.id) == value for r in routes):
        return value
    by_name = {(r.route_name or '').strip().lower(): str(r.id) for r in routes if (r.route_name or '').strip()}
    return by_name.get(value.lower(), value)


def _parse_number(raw):
    cleaned = re.sub(r'[^0-9.\-]', '', raw or '')
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_credit_limit(raw, default):
    value = _parse_number(raw)
    # Zero counts as absent, as in the dashboard form
    if value is None or not value.is_finite() or value == 0:
        return Decimal(str(default))
    return value


def parse_credit_period(raw, default):
    value = _parse_number(raw)
    if value is None or not value.is_finite() or int(value) == 0:
        return int(default)
    return int(value)


def parse_customer_csv(text, routes, settings, now_ms=None):
    """
    Parse CSV text into unsaved Customer records.

    Args:
        text: Raw file contents
        routes: Known Route records, used to resolve route names to ids
        settings: SettingsSnapshot supplying default credit limit and period
        now_ms: Millisecond timestamp used in generated ids

    Returns:
        list[Customer]: One customer per row with a business name and phone

    Raises:
        CustomerImportError: If the file is empty or has no valid rows
    """
    rows = split_lines(text)
    if len(rows) < 2:
        raise CustomerImportError("File seems empty or invalid format.")

    delimiter = guess_delimiter(rows[0])
    headers = [normalize_header(h) for h in parse_csv_line(rows[0], delimiter)]
    indexes = {field: header_index(headers, candidates) for field, candidates in HEADER_CANDIDATES.items()}
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)

    def field_value(cols, field):
        value = value_at(cols, indexes[field])
        fallback = POSITIONAL_FALLBACK[field]
        if not value and fallback is not None:
            value = value_at(cols, fallback)
        return value

    customers = []
    for i in range(1, len(rows)):
        cols = parse_csv_line(rows[i], delimiter)
        business_name = field_value(cols, 'business_name')
        phone = field_value(cols, 'phone_number')
        if not business_name or not phone:
            continue

        customers.append(Customer(
            id=f"C-IMP-{now_ms}-{i}",
            customer_name=field_value(cols, 'customer_name') or business_name,
            business_name=business_name,
            address=field_value(cols, 'address'),
            whatsapp_number=field_value(cols, 'whatsapp_number'),
            phone_number=phone,
            location='',
            credit_limit=parse_credit_limit(field_value(cols, 'credit_limit'), settings.default_credit_limit),
            credit_period_days=parse_credit_period(field_value(cols, 'credit_period_days'), settings.default_credit_period),
            route_id=resolve_route_id(field_value(cols, 'route'), routes),
            status=CustomerStatus.ACTIVE.value,
            is_active=True
        ))

    if not customers:
        raise CustomerImportError("No valid customer data found in file.")

    logger.info(f"Parsed {len(customers)} customers from {len(rows) - 1} rows")
    return customers
