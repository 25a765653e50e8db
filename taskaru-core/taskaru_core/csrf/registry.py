"""
CSRF Token Registry
===================
Single-use anti-forgery tokens keyed by session id.

Entries live in the injected StateStore under ``csrf:{session_id}``. The
store TTL outlives the token by one sweep interval so an expired entry is
still visible long enough to be reported as EXPIRED rather than NOT_FOUND.
"""

import hashlib
import hmac
import secrets
import time
from typing import Callable, Optional

import structlog

from ..audit import AuditEventType, AuditLogger
from ..config import SecuritySettings, get_settings
from ..store import StateStore
from .models import CSRFFailureReason, CSRFToken, CSRFValidation

logger = structlog.get_logger(__name__)

PREFIX = "csrf:"
TOKEN_TTL = 3600
SWEEP_INTERVAL = 300
SECRET_BYTES = 32


class CSRFTokenRegistry:
    """
    Issue and redeem CSRF tokens.

    Args:
        store: Backing state store
        settings: Settings holding ``csrf_secret`` (defaults to get_settings())
        audit: Receives every validation outcome
        clock: Time source (epoch seconds)
        ttl: Token lifetime in seconds
    """

    def __init__(
        self,
        store: StateStore,
        settings: Optional[SecuritySettings] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
        ttl: int = TOKEN_TTL,
    ):
        self.store = store
        self._settings = settings
        self.audit = audit
        self._clock = clock
        self.ttl = ttl

    @property
    def settings(self) -> SecuritySettings:
        return self._settings or get_settings()

    def _key(self, session_id: str) -> str:
        return PREFIX + session_id

    async def generate_token(
        self,
        session_id: str,
        client_ip: Optional[str] = None,
    ) -> CSRFToken:
        """
        Issue a token for a session, replacing any prior one.

        Raises:
            ConfigurationError: CSRF_SECRET is not configured
        """
        key = self.settings.require("csrf_secret").encode()
        now = self._clock()
        secret = secrets.token_hex(SECRET_BYTES)
        token = hmac.new(
            key,
            f"{session_id}:{secret}:{int(now * 1000)}".encode(),
            hashlib.sha256,
        ).hexdigest()
        expires_at = now + self.ttl

        await self.store.set(
            self._key(session_id),
            {"token": token, "secret": secret, "expires_at": expires_at, "ip": client_ip},
            ttl=self.ttl + SWEEP_INTERVAL,
        )

        logger.debug("CSRF token issued", session_id=session_id, ip_bound=bool(client_ip))
        if self.audit is not None:
            self.audit.record(
                AuditEventType.CSRF_ISSUED,
                subject=session_id,
                ip_address=client_ip,
            )
        return CSRFToken(token=token, secret=secret, expires_at=expires_at)

    def _reject(
        self,
        session_id: str,
        reason: CSRFFailureReason,
        client_ip: Optional[str],
    ) -> CSRFValidation:
        logger.warning("CSRF validation failed", session_id=session_id, reason=reason.value)
        if self.audit is not None:
            self.audit.record(
                AuditEventType.CSRF_REJECTED,
                outcome="failure",
                reason=reason.value,
                subject=session_id,
                ip_address=client_ip,
            )
        return CSRFValidation(valid=False, reason=reason)

    async def check_token(
        self,
        session_id: str,
        presented: Optional[str],
        client_ip: Optional[str] = None,
    ) -> CSRFValidation:
        """
        Redeem a token.

        Failures leave the entry in place (except expiry, which evicts it).
        Success deletes the entry so the token cannot be used again.
        """
        entry = await self.store.get(self._key(session_id))
        if entry is None:
            return self._reject(session_id, CSRFFailureReason.NOT_FOUND, client_ip)

        if self._clock() > entry["expires_at"]:
            await self.store.delete(self._key(session_id))
            return self._reject(session_id, CSRFFailureReason.EXPIRED, client_ip)

        bound_ip = entry.get("ip")
        if bound_ip and client_ip and bound_ip != client_ip:
            return self._reject(session_id, CSRFFailureReason.IP_MISMATCH, client_ip)

        if not presented or not hmac.compare_digest(
            entry["token"].encode(), presented.encode("utf-8", "replace")
        ):
            return self._reject(session_id, CSRFFailureReason.TOKEN_MISMATCH, client_ip)

        if not await self.store.delete(self._key(session_id)):
            return self._reject(session_id, CSRFFailureReason.ALREADY_USED, client_ip)

        logger.debug("CSRF token validated", session_id=session_id)
        if self.audit is not None:
            self.audit.record(
                AuditEventType.CSRF_VALIDATED,
                subject=session_id,
                ip_address=client_ip,
            )
        return CSRFValidation(valid=True)

    async def validate_token(
        self,
        session_id: str,
        presented: Optional[str],
        client_ip: Optional[str] = None,
    ) -> bool:
        return (await self.check_token(session_id, presented, client_ip)).valid

    async def get_token_for_session(self, session_id: str) -> Optional[str]:
        """Current unexpired token for a session, if any."""
        entry = await self.store.get(self._key(session_id))
        if entry is None or self._clock() > entry["expires_at"]:
            return None
        return entry["token"]

    async def sweep_expired(self) -> int:
        """Remove expired entries. Safe to run alongside request handlers."""
        now = self._clock()
        removed = 0
        for key, entry in await self.store.scan(PREFIX):
            if now > entry["expires_at"] and await self.store.delete(key):
                removed += 1
        if removed:
            logger.info("CSRF tokens swept", removed=removed)
        return removed

    async def clear_all(self) -> int:
        removed = 0
        for key, _ in await self.store.scan(PREFIX):
            if await self.store.delete(key):
                removed += 1
        return removed

    async def stats(self) -> dict:
        now = self._clock()
        entries = await self.store.scan(PREFIX)
        return {
            "total": len(entries),
            "expired": sum(1 for _, entry in entries if now > entry["expires_at"]),
        }
