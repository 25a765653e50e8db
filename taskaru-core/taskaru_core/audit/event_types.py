"""
Audit Event Types
=================
Security-relevant events emitted by the registries and services.
"""

from enum import Enum


class AuditEventType(str, Enum):
    """Audit event types for the security core."""
    # Anti-forgery
    CSRF_ISSUED = "csrf.issued"
    CSRF_VALIDATED = "csrf.validated"
    CSRF_REJECTED = "csrf.rejected"

    # Phone verification
    OTP_SENT = "otp.sent"
    OTP_SEND_BLOCKED = "otp.send_blocked"
    OTP_DELIVERY_FAILED = "otp.delivery_failed"
    OTP_VERIFIED = "otp.verified"
    OTP_VERIFY_FAILED = "otp.verify_failed"

    # Sessions
    SESSION_CREATED = "session.created"
    SESSION_EXPIRED = "session.expired"
    SESSION_DESTROYED = "session.destroyed"

    # Access/refresh tokens
    TOKEN_ISSUED = "token.issued"
    TOKEN_REFRESHED = "token.refreshed"
    TOKEN_REFRESH_REJECTED = "token.refresh_rejected"
    TOKEN_REVOKED = "token.revoked"
    TOKEN_SESSION_REVOKED = "token.session_revoked"

    # Admin panel
    ADMIN_LOGIN = "admin.login"
    ADMIN_LOGIN_FAILED = "admin.login_failed"
