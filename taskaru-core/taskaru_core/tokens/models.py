"""
Token Models
============
Access/refresh token payloads and pairs.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


# Claims that must be present for a payload to be accepted
REQUIRED_CLAIMS = ("sub", "email", "iat", "exp", "jti", "typ", "aud", "iss")


@dataclass
class TokenPayload:
    """Claims carried by an access or refresh token. Times are epoch seconds."""
    sub: str
    email: str
    iat: float
    exp: float
    jti: str
    typ: str
    aud: str
    iss: str
    scope: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    device_id: Optional[str] = None
    ip_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["TokenPayload"]:
        """Build a payload from decoded claims, or None if any required claim is missing."""
        if not all(claim in data for claim in REQUIRED_CLAIMS):
            return None
        try:
            return cls(
                sub=str(data["sub"]),
                email=str(data["email"]),
                iat=float(data["iat"]),
                exp=float(data["exp"]),
                jti=str(data["jti"]),
                typ=str(data["typ"]),
                aud=str(data["aud"]),
                iss=str(data["iss"]),
                scope=list(data.get("scope") or []),
                session_id=data.get("session_id"),
                device_id=data.get("device_id"),
                ip_address=data.get("ip_address"),
            )
        except (TypeError, ValueError):
            return None


@dataclass
class TokenPair:
    """A freshly minted access/refresh pair."""
    access_token: str
    refresh_token: str
    expires_at: float  # access token expiry
    token_id: str  # access token jti
    refresh_expires_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_id": self.token_id,
        }
