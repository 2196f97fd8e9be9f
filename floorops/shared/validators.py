"""Shared validation utilities"""

import re
from typing import Optional

from ..config import DEFAULT_COUNTRY_CODE


def validate_mobile_number(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a mobile number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+<country><number>)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    if not has_plus:
        if len(digits) == 10:
            digits = f"{DEFAULT_COUNTRY_CODE}{digits}"
        elif len(digits) == 11 and digits.startswith("0"):
            digits = f"{DEFAULT_COUNTRY_CODE}{digits[1:]}"

    # E.164 allows at most 15 digits including the country code
    if len(digits) < 11 or len(digits) > 15:
        raise ValueError("Mobile number must be 10 digits or include a country code")

    return f"+{digits}"


def validate_non_blank(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank strings become None"""
    if value is None:
        return None
    value = value.strip()
    return value or None
