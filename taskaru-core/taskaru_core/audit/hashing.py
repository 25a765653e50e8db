"""
Audit Hashing
=============
Hash chaining for the audit trail.
"""

import json
import hashlib
from datetime import datetime
from typing import Dict, Any, Optional, List, Tuple
import structlog

from .models import AuditEvent

logger = structlog.get_logger(__name__)


def compute_event_hash(
    previous_hash: Optional[str],
    timestamp: datetime,
    service: str,
    event_type: str,
    outcome: str,
    reason: Optional[str],
    payload: Dict[str, Any],
) -> str:
    """
    SHA-256 over the canonical JSON of an event and its predecessor's hash.

    Any edit to an earlier event changes every later hash.
    """
    hash_input = json.dumps({
        "previous_hash": previous_hash,
        "timestamp": timestamp.isoformat(),
        "service": service,
        "event_type": event_type,
        "outcome": outcome,
        "reason": reason,
        "payload": payload,
    }, sort_keys=True, separators=(',', ':'), default=str)

    return hashlib.sha256(hash_input.encode()).hexdigest()


def verify_chain_integrity(events: List[AuditEvent]) -> Tuple[bool, Optional[int]]:
    """
    Verify an audit chain in chronological order.

    Returns:
        (is_valid, index of the first broken event or None)
    """
    expected_previous: Optional[str] = events[0].previous_hash if events else None

    for i, event in enumerate(events):
        if event.previous_hash != expected_previous:
            logger.warning("Audit chain linkage broken", event_id=event.id, index=i)
            return False, i

        recomputed = compute_event_hash(
            event.previous_hash,
            event.timestamp,
            event.service,
            event.event_type,
            event.outcome,
            event.reason,
            event.payload,
        )
        if event.hash != recomputed:
            logger.warning(
                "Audit chain integrity violation",
                event_id=event.id,
                index=i,
                expected=recomputed[:16],
                actual=event.hash[:16],
            )
            return False, i

        expected_previous = event.hash

    return True, None
