# Input validators shared by the API models and the operation classes

import re
from datetime import datetime
from typing import Any, Optional

PHONE_PATTERN = re.compile(r'^\+?[0-9 ().-]{7,20}$')
ZIP_PATTERN = re.compile(r'^[0-9]{5}(-[0-9]{4})?$')


def normalize_email(email: Optional[str]) -> str:
    """Trimmed, lower-cased email used for identity lookups"""
    return (email or "").strip().lower()


def validate_date(date_str: str, format_str: str = "%Y-%m-%d") -> bool:
    try:
        datetime.strptime(date_str, format_str)
        return True
    except (ValueError, TypeError):
        return False


def validate_week_start(date_str: str) -> bool:
    """Weekly menus start on a Monday"""
    if not validate_date(date_str):
        return False
    return datetime.strptime(date_str, "%Y-%m-%d").weekday() == 0


def validate_phone(phone: Optional[str]) -> bool:
    if not phone or not isinstance(phone, str):
        return False
    digits = re.sub(r'\D', '', phone)
    return bool(PHONE_PATTERN.match(phone.strip())) and len(digits) >= 7


def validate_zip_code(zip_code: str) -> bool:
    return bool(zip_code) and bool(ZIP_PATTERN.match(zip_code.strip()))


def validate_price_cents(price_cents: Any) -> bool:
    """
    Non-negative integer amount in cents

    Args:
        price_cents: value to check
    """
    if isinstance(price_cents, bool):
        return False
    try:
        return int(price_cents) >= 0
    except (ValueError, TypeError):
        return False


def validate_positive_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        return int(value) > 0
    except (ValueError, TypeError):
        return False


def validate_string_length(value: str, min_length: int = 0, max_length: Optional[int] = None) -> bool:
    if not isinstance(value, str):
        return False
    if len(value) < min_length:
        return False
    if max_length is not None and len(value) > max_length:
        return False
    return True


def validate_promo_code(code: str) -> bool:
    return validate_string_length((code or "").strip(), 3, 32) and bool(re.match(r'^[A-Za-z0-9_-]+$', code.strip()))
