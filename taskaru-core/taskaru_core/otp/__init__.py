"""
OTP Issuance and Verification
=============================
SMS one-time codes with layered send limits and attempt caps.
"""

from .models import OTPConfig, OTPRecord, OTPSendResult, OTPStatus, OTPVerifyResult
from .store import InMemoryOTPStore, OTPStore
from .generator import generate_otp, is_well_formed_code
from .phone import MOBILE_PREFIXES, normalize_phone, to_e164, validate_phone
from .supabase_store import SupabaseOTPStore
from .service import MESSAGE_TEMPLATE, OTPVerificationService

__all__ = [
    # Models
    "OTPConfig",
    "OTPRecord",
    "OTPStatus",
    "OTPSendResult",
    "OTPVerifyResult",
    # Stores
    "OTPStore",
    "InMemoryOTPStore",
    "SupabaseOTPStore",
    # Helpers
    "generate_otp",
    "is_well_formed_code",
    "normalize_phone",
    "validate_phone",
    "to_e164",
    "MOBILE_PREFIXES",
    # Service
    "OTPVerificationService",
    "MESSAGE_TEMPLATE",
]
