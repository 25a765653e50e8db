"""
Security Routes
===============
CSRF issuance, SMS verification, admin login, session and token endpoints.
"""

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, Response

from ..csrf import TOKEN_TTL
from ..logging_config import mask_phone
from ..otp import OTPStatus
from .components import SecurityComponents
from .dependencies import (
    CSRF_HEADER,
    DEVICE_HEADER,
    SESSION_ID_COOKIE,
    SESSION_TOKEN_COOKIE,
    clear_session_cookies,
    client_ip,
    get_components,
    require_csrf,
    set_csrf_cookies,
    set_session_cookies,
)
from .errors import APIError, admin_login_error, otp_error, reauthenticate_error
from .schemas import AdminLoginRequest, RefreshRequest, SendOTPRequest, VerifyOTPRequest

logger = structlog.get_logger(__name__)


def create_security_router() -> APIRouter:
    router = APIRouter(tags=["security"])

    @router.get("/csrf-token")
    async def csrf_token(
        request: Request,
        response: Response,
        components: SecurityComponents = Depends(get_components),
    ):
        session_id = request.cookies.get(SESSION_ID_COOKIE) or secrets.token_urlsafe(24)
        issued = await components.csrf.generate_token(session_id, client_ip(request))
        set_csrf_cookies(response, request, session_id, issued.token)
        return {
            "csrfToken": issued.token,
            "sessionId": session_id,
            "expiresIn": TOKEN_TTL,
        }

    @router.post("/send-otp", dependencies=[Depends(require_csrf)])
    async def send_otp(
        body: SendOTPRequest,
        request: Request,
        components: SecurityComponents = Depends(get_components),
    ):
        result = await components.otp.send_otp(body.phone_number, client_ip(request))
        if result.status == OTPStatus.RATE_LIMIT_EXCEEDED:
            raise otp_error(result.status, retryAfter=result.retry_after)
        if not result.success:
            raise otp_error(result.status)
        return {"success": True, "expiresIn": components.otp.config.expiry_seconds}

    @router.post("/verify-otp", dependencies=[Depends(require_csrf)])
    async def verify_otp(
        body: VerifyOTPRequest,
        request: Request,
        response: Response,
        components: SecurityComponents = Depends(get_components),
    ):
        result = await components.otp.verify_otp(body.phone_number, body.otp)
        if result.status == OTPStatus.CODE_MISMATCH:
            raise otp_error(result.status, attemptsRemaining=result.attempts_remaining)
        if not result.success:
            raise otp_error(result.status)

        credentials = await components.sessions.create_session(phone_number=result.phone_number)
        set_session_cookies(response, request, credentials.session_token, credentials.csrf_token)
        logger.info("Phone verified; session issued", phone=mask_phone(result.phone_number))
        return {"success": True, "csrfToken": credentials.csrf_token}

    @router.post("/admin-login", dependencies=[Depends(require_csrf)])
    async def admin_login(
        body: AdminLoginRequest,
        request: Request,
        components: SecurityComponents = Depends(get_components),
        device_id: Optional[str] = Header(default=None, alias=DEVICE_HEADER),
    ):
        result = await components.admin.login(
            body.email,
            body.password,
            ip_address=client_ip(request),
            device_id=device_id,
        )
        if not result.success:
            raise admin_login_error(result.failure)

        return {
            "success": True,
            "user": {
                "id": result.account.id,
                "email": result.account.email,
                "role": result.account.role,
            },
            "session": {
                "session_id": result.session_id,
                **result.tokens.to_dict(),
            },
        }

    @router.get("/auth-check")
    async def auth_check(
        request: Request,
        components: SecurityComponents = Depends(get_components),
    ):
        session = await components.sessions.validate_session(
            request.cookies.get(SESSION_TOKEN_COOKIE)
        )
        if session is None or not session.authenticated:
            raise APIError(401, "UNAUTHENTICATED", "Authentication required", authenticated=False)
        return {
            "success": True,
            "authenticated": True,
            "userId": session.user_id,
            "phoneNumber": mask_phone(session.phone_number) if session.phone_number else None,
        }

    @router.post("/logout")
    async def logout(
        request: Request,
        response: Response,
        components: SecurityComponents = Depends(get_components),
    ):
        @components.sessions.require_auth
        async def end_session(session):
            return await components.sessions.destroy_session(session.session_token)

        await end_session(
            session_token=request.cookies.get(SESSION_TOKEN_COOKIE),
            csrf_token=request.headers.get(CSRF_HEADER),
        )
        clear_session_cookies(response)
        return {"success": True}

    @router.post("/token/refresh")
    async def refresh_token(
        body: RefreshRequest,
        request: Request,
        components: SecurityComponents = Depends(get_components),
        device_id: Optional[str] = Header(default=None, alias=DEVICE_HEADER),
    ):
        if not device_id:
            raise APIError(400, "INVALID_REQUEST", "Device id is required")
        pair = await components.tokens.refresh_token_pair(
            body.refresh_token,
            device_id,
            client_ip(request) or "unknown",
        )
        if pair is None:
            raise reauthenticate_error()
        return {"success": True, **pair.to_dict()}

    return router
