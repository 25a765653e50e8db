"""
Phone Utilities
===============
Normalization and validation of Japanese mobile numbers.
"""

import re
from typing import Iterable

MOBILE_PREFIXES = ("070", "080", "090")

# Full-width digits (U+FF10..U+FF19) to ASCII
_FULLWIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")


def normalize_phone(raw: str) -> str:
    """
    Normalize user input to the domestic digit form.

    Full-width digits become half-width, everything that is not a digit is
    dropped, and the country-code form ``81XXXXXXXXXX`` becomes
    ``0XXXXXXXXXX``.

    Args:
        raw: Phone number as typed by the user

    Returns:
        Digit string (may still be invalid; see validate_phone)
    """
    if not isinstance(raw, str):
        return ""
    digits = re.sub(r"\D", "", raw.translate(_FULLWIDTH_DIGITS))
    if digits.startswith("81") and len(digits) == 12:
        digits = "0" + digits[2:]
    return digits


def validate_phone(phone: str, prefixes: Iterable[str] = MOBILE_PREFIXES) -> bool:
    """True for 11 digits starting with an accepted mobile prefix."""
    return (
        len(phone) == 11
        and phone.isascii()
        and phone.isdigit()
        and any(phone.startswith(p) for p in prefixes)
    )


def to_e164(phone: str) -> str:
    """``0XXXXXXXXXX`` to ``+81XXXXXXXXXX`` for the SMS gateway."""
    if phone.startswith("0"):
        return "+81" + phone[1:]
    return "+" + phone

