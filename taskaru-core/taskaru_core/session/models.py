"""
Session Models
==============
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass
class SessionRecord:
    """Server-side state for one authenticated session. Times are epoch seconds."""
    session_token: str
    csrf_token: str
    created_at: float
    last_activity: float
    authenticated: bool = True
    user_id: Optional[str] = None
    phone_number: Optional[str] = None

    def is_expired(self, now: float, timeout: float) -> bool:
        return now - self.last_activity > timeout

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(**data)


@dataclass
class SessionCredentials:
    """Returned to the client when a session is created."""
    session_token: str
    csrf_token: str
