"""
Security Errors
===============
Exception taxonomy for the security core.

Only deployment defects (missing secrets) and explicit gate rejections are
raised. User-correctable outcomes are returned as result values by the
services that produce them.
"""

from typing import Optional


class TaskaruSecurityError(Exception):
    """Base class for all security core errors."""

    code: str = "SECURITY_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ConfigurationError(TaskaruSecurityError):
    """A required secret or setting is missing. Always fail closed."""

    code = "CONFIG_ERROR"


class MalformedTokenError(TaskaruSecurityError):
    """Token is not three base64url segments with a JSON object payload."""

    code = "TOKEN_MALFORMED"


class InvalidSignatureError(TaskaruSecurityError):
    """Recomputed signature does not match the presented one."""

    code = "TOKEN_INVALID_SIGNATURE"


class Unauthenticated(TaskaruSecurityError):
    """No valid session for a protected operation."""

    code = "UNAUTHENTICATED"


class CSRFInvalid(TaskaruSecurityError):
    """Anti-forgery check failed for a state-changing request."""

    code = "CSRF_INVALID"
