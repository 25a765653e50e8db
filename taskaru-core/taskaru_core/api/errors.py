"""
User-Facing Error Standards
===========================
Maps internal outcomes to HTTP status codes and stable machine codes.

Messages shown to users are generic. Enumeration-sensitive failures (unknown
account, wrong password, disabled account, missing admin role) all produce
the same AUTH_FAILED response; the distinct kind is only logged.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..admin import AdminLoginFailure
from ..errors import ConfigurationError, CSRFInvalid, TaskaruSecurityError, Unauthenticated
from ..otp import OTPStatus
from ..supabase import SupabaseError

logger = structlog.get_logger(__name__)

# Shown whenever the failure is on our side
USER_FRIENDLY_MESSAGE = "サービスが一時的に利用できません。しばらくしてから再度お試しください。"
AUTH_FAILED_MESSAGE = "認証に失敗しました"


class APIError(Exception):
    """An error response with a stable machine code."""

    def __init__(self, status_code: int, code: str, message: str, **extra):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


# status, code, message
OTP_ERRORS = {
    OTPStatus.INVALID_PHONE_FORMAT: (400, "INVALID_PHONE_FORMAT", "電話番号の形式が正しくありません"),
    OTPStatus.MALFORMED_CODE: (400, "MALFORMED_CODE", "認証コードは6桁の数字で入力してください"),
    OTPStatus.RATE_LIMIT_EXCEEDED: (429, "RATE_LIMIT_EXCEEDED", "送信回数の上限に達しました。しばらくしてから再度お試しください"),
    OTPStatus.DELIVERY_FAILED: (503, "DELIVERY_FAILED", "SMSの送信に失敗しました。再度お試しください"),
    OTPStatus.NOT_FOUND_OR_EXPIRED: (400, "NOT_FOUND_OR_EXPIRED", "認証コードが見つからないか、有効期限が切れています"),
    OTPStatus.ATTEMPTS_EXHAUSTED: (429, "ATTEMPTS_EXHAUSTED", "試行回数の上限に達しました。認証コードを再送信してください"),
    OTPStatus.CODE_MISMATCH: (400, "CODE_MISMATCH", "認証コードが正しくありません"),
    OTPStatus.EXPIRED: (400, "EXPIRED", "認証コードの有効期限が切れています"),
}


def otp_error(status: OTPStatus, **extra) -> APIError:
    status_code, code, message = OTP_ERRORS[status]
    return APIError(status_code, code, message, **extra)


def admin_login_error(failure: Optional[AdminLoginFailure]) -> APIError:
    if failure == AdminLoginFailure.INVALID_INPUT:
        return APIError(400, "INVALID_INPUT", "メールアドレスとパスワードを正しく入力してください")
    return APIError(401, "AUTH_FAILED", AUTH_FAILED_MESSAGE)


def reauthenticate_error() -> APIError:
    return APIError(401, "REAUTHENTICATE", "再度ログインしてください")


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        headers = {}
        if exc.extra.get("retryAfter"):
            headers["Retry-After"] = str(exc.extra["retryAfter"])
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(Unauthenticated)
    async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"success": False, "error": "Authentication required", "code": exc.code},
        )

    @app.exception_handler(CSRFInvalid)
    async def csrf_handler(request: Request, exc: CSRFInvalid) -> JSONResponse:
        logger.warning("CSRF check failed", path=request.url.path)
        return JSONResponse(
            status_code=403,
            content={"success": False, "error": "CSRF token validation failed", "code": exc.code},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": USER_FRIENDLY_MESSAGE, "code": exc.code},
        )

    @app.exception_handler(TaskaruSecurityError)
    async def security_error_handler(request: Request, exc: TaskaruSecurityError) -> JSONResponse:
        logger.warning("Security error", path=request.url.path, code=exc.code)
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "code": exc.code},
        )

    @app.exception_handler(SupabaseError)
    async def database_error_handler(request: Request, exc: SupabaseError) -> JSONResponse:
        logger.error(
            "Database error",
            path=request.url.path,
            table=exc.table,
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": USER_FRIENDLY_MESSAGE, "code": "SERVICE_UNAVAILABLE"},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body", "code": "INVALID_REQUEST"},
        )
