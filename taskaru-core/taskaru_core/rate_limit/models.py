"""
Rate Limit Models
=================
Data models for rate limiting results.
"""

from typing import Optional
from dataclasses import dataclass
from enum import Enum


class RateLimitLayer(str, Enum):
    """Which OTP send limit was hit."""
    PHONE = "phone"
    IP = "ip"
    GLOBAL = "global"
    FANOUT = "fanout"


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    limit: int = 0
    current: int = 0
    layer: Optional[RateLimitLayer] = None
    retry_after: Optional[int] = None  # Seconds until retry allowed

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current)
