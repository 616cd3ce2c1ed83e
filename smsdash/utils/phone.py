"""
Phone number normalization - canonical "+<digits>" format.

Canonical numbers are the storage and lookup key for contacts and messages.
Bare 10-digit numbers are treated as NANP; anything else with 7-15 digits is
taken as already carrying its country code.
"""
import logging
import re
from typing import Any

import phonenumbers

logger = logging.getLogger(__name__)

_DIGITS_ONLY = re.compile(r"\D")

MIN_DIGITS = 7
MAX_DIGITS = 15


class InvalidPhoneNumber(ValueError):
    """Input cannot be turned into a canonical phone number."""


def _digits(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _DIGITS_ONLY.sub("", value)


def is_valid_phone(value: Any) -> bool:
    """True when the input has between 7 and 15 digits once formatting is stripped."""
    digits = _digits(value)
    return MIN_DIGITS <= len(digits) <= MAX_DIGITS


def normalize_phone(value: Any) -> str:
    """
    Normalize a phone number to canonical "+<digits>" form.

    Handles:
    - (307) 624-9136  → +13076249136
    - 1-307-624-9136  → +13076249136
    - +44 7911 123456 → +447911123456
    - 447911123456    → +447911123456

    Raises InvalidPhoneNumber when there are no digits or the count is
    outside 7-15.
    """
    digits = _digits(value)
    if not digits or not (MIN_DIGITS <= len(digits) <= MAX_DIGITS):
        raise InvalidPhoneNumber(f"Invalid phone number: {value!r}")

    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def to_display(value: Any) -> str:
    """
    Best-effort human format. NANP numbers render as (XXX) XXX-XXXX,
    everything else in international format. Never raises.
    """
    try:
        canonical = normalize_phone(value)
    except InvalidPhoneNumber:
        return value

    try:
        parsed = phonenumbers.parse(canonical, None)
    except phonenumbers.NumberParseException:
        return canonical

    if parsed.country_code == 1:
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.NATIONAL)
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)


def mask_phone(phone: str) -> str:
    """Mask a phone number for log lines."""
    if not phone:
        return ""
    return phone[:6] + "***"
