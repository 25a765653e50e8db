"""
OTP Generator
=============
"""

import re
import secrets

CODE_PATTERN = re.compile(r"[0-9]{6}")


def generate_otp(length: int = 6) -> str:
    """
    Generate a numeric one-time code from the OS CSPRNG.

    Args:
        length: Number of digits

    Returns:
        Zero-padded digit string
    """
    return str(secrets.randbelow(10 ** length)).zfill(length)


def is_well_formed_code(code, length: int = 6) -> bool:
    """True if code is exactly ``length`` ASCII digits."""
    if not isinstance(code, str):
        return False
    if length == 6:
        return bool(CODE_PATTERN.fullmatch(code))
    return len(code) == length and code.isascii() and code.isdigit()
