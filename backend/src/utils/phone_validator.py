"""
Phone number utilities.

Provides centralized phone number cleaning and E.164 formatting used by
the messaging providers.
"""

import re
from typing import Optional

from core.config import DEFAULT_PHONE_COUNTRY_CODE


def clean_phone_number(phone: str) -> str:
    """
    Clean phone number by removing every non-digit character.

    Args:
        phone: Phone number string (may contain spaces, dashes, parentheses, etc.)

    Returns:
        Cleaned phone number (digits only)
    """
    return re.sub(r'\D', '', phone)


def format_e164(phone: str, country_code: Optional[str] = None) -> str:
    """
    Format a phone number to E.164.

    Numbers already starting with "+" are returned unchanged. Local
    10-digit numbers get the default country code prepended.

    Args:
        phone: Phone number in any common format
        country_code: Country calling code without "+" (defaults to configuration)

    Returns:
        Phone number in E.164 format ("+5215512345678")

    Raises:
        ValueError: If the number has no digits
    """
    if not phone or not phone.strip():
        raise ValueError('Phone number is required')

    phone = phone.strip()
    if phone.startswith('+'):
        return phone

    cleaned = clean_phone_number(phone)
    if not cleaned:
        raise ValueError('Invalid phone number format')

    if len(cleaned) == 10:
        cleaned = (country_code or DEFAULT_PHONE_COUNTRY_CODE) + cleaned

    return '+' + cleaned


def last_digits(phone: Optional[str], count: int = 4) -> str:
    """Return the last digits of a phone number (used for masking and synthetic emails)."""
    if not phone:
        return ""
    return clean_phone_number(phone)[-count:]
