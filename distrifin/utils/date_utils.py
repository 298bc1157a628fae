from datetime import datetime, date
import pytz
from dateutil import parser as date_parser

UTC = pytz.utc

def get_utc_now():
    """Get current timezone-aware datetime in UTC"""
    return datetime.now(UTC)

def utc_timestamp():
    return get_utc_now().isoformat()

def today_iso(tz_name=None):
    """Today's date as YYYY-MM-DD in the given timezone (UTC by default)"""
    tz = pytz.timezone(tz_name) if tz_name else UTC
    return datetime.now(tz).date().isoformat()

def parse_iso_date(value) -> date:
    """
    Parse a strict 'YYYY-MM-DD' date.

    Raises:
        ValueError: If the value is empty or not in ISO format
    """
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(f"Invalid date format: {e}")

def parse_statement_date(value):
    """Bank exports use assorted day-first formats; normalise to YYYY-MM-DD or None"""
    text = str(value or '').strip()
    if not text:
        return None
    try:
        return parse_iso_date(text).isoformat()
    except ValueError:
        pass
    try:
        return date_parser.parse(text, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        return None
