"""
CSRF Models
===========
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CSRFFailureReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    IP_MISMATCH = "ip_mismatch"
    TOKEN_MISMATCH = "token_mismatch"
    ALREADY_USED = "already_used"


@dataclass
class CSRFToken:
    """A freshly issued anti-forgery token."""
    token: str
    secret: str
    expires_at: float


@dataclass
class CSRFValidation:
    """Outcome of a CSRF check."""
    valid: bool
    reason: Optional[CSRFFailureReason] = None

    def __bool__(self) -> bool:
        return self.valid
