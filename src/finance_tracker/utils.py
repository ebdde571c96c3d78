"""
Finance Tracker - Shared Helpers

Date, number and text helpers used across the engine. Dates travel through the
system as ISO strings (YYYY-MM-DD); Brazilian formatting (DD/MM/YYYY, R$ 1.234,56)
is only applied at the edges (exports, emails).

License: MIT
"""

import calendar
import datetime
import math
import re
import time
import unicodedata
from decimal import Decimal

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

MONTH_NAMES = [
    'Janeiro', 'Fevereiro', 'Março', 'Abril', 'Maio', 'Junho',
    'Julho', 'Agosto', 'Setembro', 'Outubro', 'Novembro', 'Dezembro',
]
MONTH_SHORT_NAMES = ['Jan', 'Fev', 'Mar', 'Abr', 'Mai', 'Jun', 'Jul', 'Ago', 'Set', 'Out', 'Nov', 'Dez']


# =============================================================================
# DATES
# =============================================================================

def is_valid_date(date_str):
    """True if date_str is YYYY-MM-DD and names a real calendar day."""
    if not date_str or not isinstance(date_str, str):
        return False
    if not ISO_DATE_RE.match(date_str):
        return False
    try:
        datetime.datetime.strptime(date_str, '%Y-%m-%d')
        return True
    except ValueError:
        return False


def to_date(value):
    """Coerce an ISO string, date or datetime to a date (None if impossible)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


def today():
    return datetime.date.today()


def today_str():
    return datetime.date.today().strftime('%Y-%m-%d')


def format_date_br(date_str):
    """2025-01-31 -> 31/01/2025"""
    if not is_valid_date(date_str):
        return ''
    year, month, day = date_str.split('-')
    return f"{day}/{month}/{year}"


def parse_date_br(date_str):
    """31/01/2025 -> 2025-01-31, or None when the input is not a valid date."""
    if not date_str or not isinstance(date_str, str):
        return None
    parts = date_str.strip().split('/')
    if len(parts) != 3:
        return None
    day, month, year = parts
    iso = f"{year.zfill(4)}-{month.zfill(2)}-{day.zfill(2)}"
    return iso if is_valid_date(iso) else None


def get_days_difference(date1, date2):
    d1, d2 = to_date(date1), to_date(date2)
    if d1 is None or d2 is None:
        return 0
    return abs((d2 - d1).days)


def add_months(date, months):
    """
    Shift a date by a number of months, clamping to the last day of the
    target month (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = date.month - 1 + months
    year = date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return datetime.date(year, month, day)


def month_bounds(year, month):
    """Return (first_day, last_day) of a month as ISO strings."""
    last_day = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}"


def month_key(date):
    return f"{date.year:04d}-{date.month:02d}"


# =============================================================================
# NUMBERS
# =============================================================================

def is_valid_number(value):
    """True for finite numbers and numeric strings."""
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number)


def format_currency(value, currency='BRL'):
    """Format as R$ 1.234,56 (or $ for USD)."""
    if not is_valid_number(value):
        value = 0
    symbol = '$' if currency == 'USD' else 'R$'
    amount = Decimal(str(value)).quantize(Decimal('0.01'))
    sign = '-' if amount < 0 else ''
    # Swap separators: 1,234.56 -> 1.234,56
    formatted = f"{abs(amount):,.2f}".replace(',', '_').replace('.', ',').replace('_', '.')
    return f"{sign}{symbol} {formatted}"


def percentage(part, whole, digits=1):
    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100, digits)


# =============================================================================
# TEXT
# =============================================================================

def sanitize_string(value, max_length=1000):
    if not value or not isinstance(value, str):
        return ''
    if not max_length or max_length < 1:
        max_length = 1000
    return value.strip()[:max_length]


def is_valid_email(email):
    if not email or not isinstance(email, str):
        return False
    return bool(EMAIL_RE.match(email))


def truncate_text(text, max_length):
    if not text or not isinstance(text, str):
        return ''
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + '...'


def remove_accents(value):
    if not value or not isinstance(value, str):
        return ''
    normalized = unicodedata.normalize('NFD', value)
    return ''.join(ch for ch in normalized if unicodedata.category(ch) != 'Mn')


def capitalize_words(value):
    if not value or not isinstance(value, str):
        return ''
    return re.sub(r'\b\w', lambda m: m.group(0).upper(), value.lower())


# =============================================================================
# MISC
# =============================================================================

def retry_with_backoff(fn, max_retries=3, base_delay=1.0):
    """
    Call fn() until it succeeds, sleeping 2**attempt * base_delay seconds
    between failures. The last exception is re-raised.
    """
    max_retries = max_retries or 3
    for attempt in range(max_retries):
        try:
            return fn()
        except Exception:
            if attempt == max_retries - 1:
                raise
            time.sleep((2 ** attempt) * base_delay)
