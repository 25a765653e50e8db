"""
Audit Trail
===========
Hash-chained audit events for CSRF, OTP, session and token outcomes.
"""

from .event_types import AuditEventType
from .models import AuditEvent
from .hashing import compute_event_hash, verify_chain_integrity
from .logger import AuditLogger

__all__ = [
    "AuditEventType",
    "AuditEvent",
    "compute_event_hash",
    "verify_chain_integrity",
    "AuditLogger",
]
