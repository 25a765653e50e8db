"""
Audit Logger
=============
In-process audit trail collaborator for the security registries.
"""

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Any, Optional, List, Union
import structlog

from .event_types import AuditEventType
from .models import AuditEvent
from .hashing import compute_event_hash

logger = structlog.get_logger(__name__)


class AuditLogger:
    """
    Records validation outcomes as hash-chained events.

    The registries only emit events; persisting them is up to whoever
    drains the buffer with ``flush()``.
    """

    def __init__(self, service_name: str, max_buffer: int = 10000):
        self.service_name = service_name
        self._previous_hash: Optional[str] = None
        self._buffer: Deque[AuditEvent] = deque(maxlen=max_buffer)

    def set_previous_hash(self, hash_value: str) -> None:
        """Resume a chain persisted elsewhere."""
        self._previous_hash = hash_value

    def record(
        self,
        event_type: Union[AuditEventType, str],
        outcome: str = "success",
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        subject: Optional[str] = None,
        ip_address: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """
        Append an event to the trail.

        Args:
            event_type: Type of event
            outcome: "success", "failure" or "blocked"
            reason: Machine-readable failure reason
            actor_id: User or admin id when known
            subject: Affected session id, masked phone, token id...
            ip_address: Client IP address
            payload: Additional event data (never secrets)
        """
        timestamp = datetime.now(timezone.utc)
        payload = payload or {}
        event_type_str = (
            event_type.value if isinstance(event_type, AuditEventType)
            else event_type
        )

        event_hash = compute_event_hash(
            self._previous_hash,
            timestamp,
            self.service_name,
            event_type_str,
            outcome,
            reason,
            payload,
        )

        event = AuditEvent(
            id=str(uuid.uuid4()),
            timestamp=timestamp,
            service=self.service_name,
            event_type=event_type_str,
            outcome=outcome,
            reason=reason,
            actor_id=actor_id,
            subject=subject,
            ip_address=ip_address,
            payload=payload,
            hash=event_hash,
            previous_hash=self._previous_hash,
        )

        self._previous_hash = event_hash
        self._buffer.append(event)

        logger.info(
            "Audit event recorded",
            event_type=event_type_str,
            outcome=outcome,
            reason=reason,
        )
        return event

    def events(self, event_type: Optional[Union[AuditEventType, str]] = None) -> List[AuditEvent]:
        """Buffered events, optionally filtered by type."""
        if event_type is None:
            return list(self._buffer)
        wanted = event_type.value if isinstance(event_type, AuditEventType) else event_type
        return [e for e in self._buffer if e.event_type == wanted]

    def flush(self) -> List[AuditEvent]:
        """Return and clear buffered events."""
        events = list(self._buffer)
        self._buffer.clear()
        return events
