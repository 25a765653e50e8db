"""
Server-side sessions with sliding expiry.
"""

from .manager import SESSION_TIMEOUT, SWEEP_INTERVAL, SessionManager
from .models import SessionCredentials, SessionRecord

__all__ = [
    "SessionManager",
    "SessionRecord",
    "SessionCredentials",
    "SESSION_TIMEOUT",
    "SWEEP_INTERVAL",
]
