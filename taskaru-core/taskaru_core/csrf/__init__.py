"""
Anti-forgery tokens for state-changing requests.
"""

from .models import CSRFFailureReason, CSRFToken, CSRFValidation
from .registry import SWEEP_INTERVAL, TOKEN_TTL, CSRFTokenRegistry

__all__ = [
    "CSRFTokenRegistry",
    "CSRFToken",
    "CSRFValidation",
    "CSRFFailureReason",
    "TOKEN_TTL",
    "SWEEP_INTERVAL",
]
