"""
Format and value validators for registry attributes.

Patterns are the ones enforced by the deployed schema CHECK constraints:
- National ID (RUT): 7-8 digits, dash, check digit 0-9 or K
- Email: local@domain.tld with a 2+ letter top-level label
- Phone: digit or '+' followed by 5-19 digits, spaces or dashes
"""

import re
from datetime import date, datetime, time
from typing import Any, Optional

from elderly_registry.errors import InvalidDateRange, InvalidFormat

NATIONAL_ID_PATTERN = r'^[0-9]{7,8}-[0-9Kk]$'
EMAIL_PATTERN = r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$'
PHONE_PATTERN = r'^[0-9+][0-9 -]{5,19}$'

_NATIONAL_ID_RE = re.compile(NATIONAL_ID_PATTERN)
_EMAIL_RE = re.compile(EMAIL_PATTERN, re.IGNORECASE)
_PHONE_RE = re.compile(PHONE_PATTERN)

DATE_FORMATS = ('%Y-%m-%d', '%d/%m/%Y')


def is_valid_national_id(value: str) -> bool:
    return bool(value) and _NATIONAL_ID_RE.fullmatch(value) is not None


def is_valid_email(value: Optional[str]) -> bool:
    """Absent email (None or empty) is always valid."""
    if not value:
        return True
    return _EMAIL_RE.fullmatch(value) is not None


def is_valid_phone(value: str) -> bool:
    return bool(value) and _PHONE_RE.fullmatch(value) is not None


def validate_national_id(field: str, value: Any) -> None:
    if not isinstance(value, str) or not is_valid_national_id(value):
        raise InvalidFormat(field, "7-8 digits, '-', check digit 0-9 or K", value)


def validate_email(field: str, value: Any) -> None:
    if value is None:
        return
    if not isinstance(value, str) or not is_valid_email(value):
        raise InvalidFormat(field, "local@domain.tld", value)


def validate_phone(field: str, value: Any) -> None:
    if not isinstance(value, str) or not is_valid_phone(value):
        raise InvalidFormat(
            field, "digit or '+' then 5-19 digits, spaces or dashes (6-20 characters in total)", value
        )


def validate_date_range(start_field: str, end_field: str, start: Optional[date], end: Optional[date]) -> None:
    """End dates are optional; same-day ranges are valid."""
    if start is None or end is None:
        return
    if end < start:
        raise InvalidDateRange(start_field, end_field, start, end)


# ============================================
# COERCION
# ============================================

def parse_date(value: str) -> Optional[date]:
    """Parse a DD/MM/YYYY or YYYY-MM-DD string, returning None when neither matches."""
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def coerce_date(field: str, value: Any) -> Optional[date]:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        if value.time() != time.min:
            raise InvalidFormat(field, "date without time of day", value)
        return value.date()
    if isinstance(value, str):
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
    raise InvalidFormat(field, "date (YYYY-MM-DD or DD/MM/YYYY)", value)


def coerce_datetime(field: str, value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidFormat(field, "ISO timestamp", value)


def blank_to_none(value: Any) -> Any:
    """Optional text columns store NULL rather than an empty string."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============================================
# DISPLAY HELPERS
# ============================================

def format_date(value: Optional[date], missing: str = "N/A") -> str:
    if value is None:
        return missing
    return value.strftime('%d/%m/%Y')


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """Age in completed years at ``today`` (defaults to the current date)."""
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age
