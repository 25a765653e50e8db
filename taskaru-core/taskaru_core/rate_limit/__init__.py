"""
Rate Limiting Module for Taskaru Core
=====================================
Layered OTP send limits backed by the OTP store's history.
"""

from .models import RateLimitLayer, RateLimitInfo
from .otp_limiter import OTPSendLimiter, OTPSendPolicy

__all__ = [
    # Models
    "RateLimitLayer",
    "RateLimitInfo",
    # Limiters
    "OTPSendLimiter",
    "OTPSendPolicy",
]
