"""
OTP Verification Service
========================
Issues codes over SMS and verifies them against the OTP store.

Per phone number: NONE -> SENT -> VERIFIED | EXPIRED | ATTEMPTS_EXHAUSTED.
"""

import asyncio
import hmac
import time
from typing import Callable, Optional

import structlog

from ..audit import AuditEventType, AuditLogger
from ..logging_config import mask_phone
from ..rate_limit import OTPSendLimiter
from ..sms import SMSGateway
from .generator import generate_otp, is_well_formed_code
from .models import OTPConfig, OTPRecord, OTPSendResult, OTPStatus, OTPVerifyResult
from .phone import MOBILE_PREFIXES, normalize_phone, to_e164, validate_phone
from .store import OTPStore

logger = structlog.get_logger(__name__)

MESSAGE_TEMPLATE = (
    "【タスカル】認証コード: {code}\n\n"
    "※5分間有効です。第三者には絶対に教えないでください。"
)


class OTPVerificationService:
    """
    Send and verify one-time codes.

    Args:
        store: OTP persistence
        gateway: SMS delivery
        limiter: Layered send limits
        config: Code length, lifetime, attempts, send timeout
        audit: Optional audit trail
        clock: Time source (epoch seconds)
        accepted_prefixes: Mobile prefixes accepted for sends
    """

    def __init__(
        self,
        store: OTPStore,
        gateway: SMSGateway,
        limiter: Optional[OTPSendLimiter] = None,
        config: Optional[OTPConfig] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
        accepted_prefixes=MOBILE_PREFIXES,
    ):
        self.store = store
        self.gateway = gateway
        self.limiter = limiter or OTPSendLimiter(store, clock=clock)
        self.config = config or OTPConfig()
        self.audit = audit
        self._clock = clock
        self.accepted_prefixes = tuple(accepted_prefixes)

    def _audit(self, event_type: AuditEventType, **kwargs) -> None:
        if self.audit is not None:
            self.audit.record(event_type, **kwargs)

    async def send_otp(self, phone_number: str, client_ip: Optional[str] = None) -> OTPSendResult:
        """
        Issue a code and dispatch it by SMS.

        The record is committed before dispatch. A delivery failure is
        reported as DELIVERY_FAILED and the stored record stays redeemable.
        """
        phone = normalize_phone(phone_number)
        masked = mask_phone(phone)

        if not validate_phone(phone, self.accepted_prefixes):
            logger.info("OTP send rejected: invalid phone format", phone=masked)
            return OTPSendResult(status=OTPStatus.INVALID_PHONE_FORMAT)

        limit = await self.limiter.check(phone, client_ip)
        if not limit.allowed:
            self._audit(
                AuditEventType.OTP_SEND_BLOCKED,
                outcome="blocked",
                reason=limit.layer.value,
                subject=masked,
                ip_address=client_ip,
            )
            return OTPSendResult(
                status=OTPStatus.RATE_LIMIT_EXCEEDED,
                retry_after=limit.retry_after,
                limit_layer=limit.layer.value,
            )

        now = self._clock()
        code = generate_otp(self.config.length)
        record = OTPRecord(
            phone_number=phone,
            code=code,
            created_at=now,
            expires_at=now + self.config.expiry_seconds,
            attempts=0,
            request_ip=client_ip,
        )
        await self.store.insert(record)

        body = MESSAGE_TEMPLATE.format(code=code)
        try:
            result = await asyncio.wait_for(
                self.gateway.send_sms(to_e164(phone), body),
                timeout=self.config.send_timeout_seconds,
            )
            delivered = result.success
            error = result.error_message
        except asyncio.TimeoutError:
            delivered = False
            error = "timeout"
        except Exception as e:
            logger.exception("SMS gateway raised", provider=self.gateway.name, phone=masked)
            delivered = False
            error = str(e)

        if not delivered:
            logger.error(
                "OTP delivery failed; stored code remains redeemable",
                phone=masked,
                provider=self.gateway.name,
                error=error,
            )
            self._audit(
                AuditEventType.OTP_DELIVERY_FAILED,
                outcome="failure",
                reason="delivery_failed",
                subject=masked,
                ip_address=client_ip,
                payload={"record_retained": True},
            )
            return OTPSendResult(status=OTPStatus.DELIVERY_FAILED, expires_at=record.expires_at)

        logger.info("OTP sent", phone=masked, expires_in=self.config.expiry_seconds)
        self._audit(AuditEventType.OTP_SENT, subject=masked, ip_address=client_ip)
        return OTPSendResult(status=OTPStatus.SENT, expires_at=record.expires_at)

    def _verify_failed(self, status: OTPStatus, masked: str, **extra) -> OTPVerifyResult:
        self._audit(
            AuditEventType.OTP_VERIFY_FAILED,
            outcome="failure",
            reason=status.value,
            subject=masked,
        )
        return OTPVerifyResult(status=status, **extra)

    async def prune_history(self) -> int:
        """Trim in-memory send history the limiter no longer reads, plus finished records."""
        now = self._clock()
        removed = await self.store.prune(now - self.limiter.policy.retention_seconds, now)
        if removed:
            logger.debug("OTP send history pruned", removed=removed)
        return removed

    async def verify_otp(self, phone_number: str, code: str) -> OTPVerifyResult:
        """
        Check a submitted code.

        Steps: look up the active record, claim an attempt (refused once
        they are used up), compare, refuse if expired at compare time, then
        mark the record verified so it cannot be redeemed again.
        """
        phone = normalize_phone(phone_number)
        masked = mask_phone(phone)

        if not validate_phone(phone, self.accepted_prefixes):
            return OTPVerifyResult(status=OTPStatus.INVALID_PHONE_FORMAT)
        if not is_well_formed_code(code, self.config.length):
            return OTPVerifyResult(status=OTPStatus.MALFORMED_CODE)

        record = await self.store.find_active(phone, self._clock())
        if record is None:
            logger.info("OTP verify: no active code", phone=masked)
            return self._verify_failed(OTPStatus.NOT_FOUND_OR_EXPIRED, masked)

        attempts = await self.store.consume_attempt(phone, self.config.max_attempts, self._clock())
        if attempts is None:
            if await self.store.find_active(phone, self._clock()) is None:
                return self._verify_failed(OTPStatus.NOT_FOUND_OR_EXPIRED, masked)
            logger.warning("OTP verify: attempts exhausted", phone=masked)
            return self._verify_failed(OTPStatus.ATTEMPTS_EXHAUSTED, masked, attempts_remaining=0)

        if not hmac.compare_digest(record.code.encode(), code.encode()):
            remaining = max(0, self.config.max_attempts - attempts)
            logger.warning("OTP verify: code mismatch", phone=masked, attempts_remaining=remaining)
            return self._verify_failed(
                OTPStatus.CODE_MISMATCH, masked, attempts_remaining=remaining
            )

        now = self._clock()
        if record.is_expired(now):
            logger.info("OTP verify: code expired", phone=masked)
            return self._verify_failed(OTPStatus.EXPIRED, masked)

        if not await self.store.mark_verified(phone, now):
            return self._verify_failed(OTPStatus.NOT_FOUND_OR_EXPIRED, masked)

        logger.info("OTP verified", phone=masked)
        self._audit(AuditEventType.OTP_VERIFIED, subject=masked)
        return OTPVerifyResult(status=OTPStatus.VERIFIED, phone_number=phone)
