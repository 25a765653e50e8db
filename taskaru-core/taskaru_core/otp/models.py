"""
OTP Models
==========
Data models and enums for OTP issuance and verification.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OTPStatus(str, Enum):
    """Outcome of a send or verify call."""
    SENT = "sent"
    VERIFIED = "verified"
    INVALID_PHONE_FORMAT = "invalid_phone_format"
    MALFORMED_CODE = "malformed_code"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    DELIVERY_FAILED = "delivery_failed"
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CODE_MISMATCH = "code_mismatch"
    EXPIRED = "expired"


@dataclass
class OTPConfig:
    """Configuration for OTP generation."""
    length: int = 6
    expiry_seconds: int = 300  # 5 minutes
    max_attempts: int = 5
    send_timeout_seconds: float = 10.0


@dataclass
class OTPRecord:
    """
    One issued code for a phone number.

    Times are epoch seconds. A record past ``expires_at`` is treated as
    absent whether or not it was verified.
    """
    phone_number: str
    code: str
    created_at: float
    expires_at: float
    attempts: int = 0
    verified: bool = False
    verified_at: Optional[float] = None
    request_ip: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def is_active(self, now: float) -> bool:
        return not self.verified and not self.is_expired(now)


@dataclass
class OTPSendResult:
    status: OTPStatus
    expires_at: Optional[float] = None
    retry_after: Optional[int] = None
    limit_layer: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OTPStatus.SENT


@dataclass
class OTPVerifyResult:
    status: OTPStatus
    attempts_remaining: Optional[int] = None
    phone_number: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OTPStatus.VERIFIED
