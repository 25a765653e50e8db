"""
Taskaru Core Library
====================
Security core for the Taskaru diagnosis app: CSRF tokens, SMS one-time
codes, sessions and signed access/refresh tokens.
"""

__version__ = "0.1.0"

# Errors
from taskaru_core.errors import (
    TaskaruSecurityError,
    ConfigurationError,
    MalformedTokenError,
    InvalidSignatureError,
    Unauthenticated,
    CSRFInvalid,
)

# Config & Logging
from taskaru_core.config import SecuritySettings, get_settings
from taskaru_core.logging_config import configure_logging, mask_phone

# State store
from taskaru_core.store import (
    StateStore,
    InMemoryStateStore,
    RedisStateStore,
    build_state_store,
)

# Audit
from taskaru_core.audit import (
    AuditEventType,
    AuditEvent,
    AuditLogger,
    compute_event_hash,
    verify_chain_integrity,
)

# Tokens
from taskaru_core.tokens import (
    TokenCodec,
    SecureTokenManager,
    TokenPair,
    TokenPayload,
    TokenType,
    IPBindingMode,
)

# CSRF
from taskaru_core.csrf import CSRFTokenRegistry, CSRFFailureReason, CSRFValidation

# OTP
from taskaru_core.otp import (
    OTPVerificationService,
    OTPStore,
    InMemoryOTPStore,
    SupabaseOTPStore,
    OTPStatus,
    OTPConfig,
)
from taskaru_core.rate_limit import OTPSendLimiter, OTPSendPolicy, RateLimitLayer
from taskaru_core.sms import SMSGateway, TwilioGateway, InMemorySMSGateway, SendResult

# Sessions
from taskaru_core.session import SessionManager, SessionRecord, SessionCredentials

# Admin
from taskaru_core.admin import AdminAuthenticator, AdminLoginFailure, AdminLoginResult

__all__ = [
    "__version__",
    # Errors
    "TaskaruSecurityError",
    "ConfigurationError",
    "MalformedTokenError",
    "InvalidSignatureError",
    "Unauthenticated",
    "CSRFInvalid",
    # Config & Logging
    "SecuritySettings",
    "get_settings",
    "configure_logging",
    "mask_phone",
    # State store
    "StateStore",
    "InMemoryStateStore",
    "RedisStateStore",
    "build_state_store",
    # Audit
    "AuditEventType",
    "AuditEvent",
    "AuditLogger",
    "compute_event_hash",
    "verify_chain_integrity",
    # Tokens
    "TokenCodec",
    "SecureTokenManager",
    "TokenPair",
    "TokenPayload",
    "TokenType",
    "IPBindingMode",
    # CSRF
    "CSRFTokenRegistry",
    "CSRFFailureReason",
    "CSRFValidation",
    # OTP
    "OTPVerificationService",
    "OTPStore",
    "InMemoryOTPStore",
    "SupabaseOTPStore",
    "OTPStatus",
    "OTPConfig",
    "OTPSendLimiter",
    "OTPSendPolicy",
    "RateLimitLayer",
    "SMSGateway",
    "TwilioGateway",
    "InMemorySMSGateway",
    "SendResult",
    # Sessions
    "SessionManager",
    "SessionRecord",
    "SessionCredentials",
    # Admin
    "AdminAuthenticator",
    "AdminLoginFailure",
    "AdminLoginResult",
]
