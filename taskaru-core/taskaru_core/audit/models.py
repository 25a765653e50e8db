"""
Audit Models
=============
Audit trail entry.
"""

from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field


@dataclass
class AuditEvent:
    """An audit trail entry linked to its predecessor by hash."""
    id: str
    timestamp: datetime
    service: str
    event_type: str
    outcome: str  # "success", "failure", "blocked"
    hash: str
    previous_hash: Optional[str]
    reason: Optional[str] = None
    actor_id: Optional[str] = None
    subject: Optional[str] = None  # session id, masked phone, token id...
    ip_address: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['timestamp'] = self.timestamp.isoformat()
        return d
