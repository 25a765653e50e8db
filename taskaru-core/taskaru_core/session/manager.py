"""
Session Manager
===============
Opaque session tokens with a sliding idle timeout and a bound CSRF token.
"""

import functools
import hashlib
import hmac
import secrets
import time
from typing import Any, Awaitable, Callable, Optional

import structlog

from ..audit import AuditEventType, AuditLogger
from ..config import SecuritySettings, get_settings
from ..errors import CSRFInvalid, Unauthenticated
from ..logging_config import mask_phone
from ..store import StateStore
from .models import SessionCredentials, SessionRecord

logger = structlog.get_logger(__name__)

PREFIX = "session:"
SESSION_TIMEOUT = 30 * 60
SWEEP_INTERVAL = 5 * 60
MUTABLE_FIELDS = ("user_id", "phone_number", "authenticated")


class SessionManager:
    """
    Create, validate and destroy sessions.

    A session expires once it has been idle for longer than ``timeout``;
    every successful validation resets the idle clock.

    Args:
        store: Backing state store
        settings: Settings holding ``csrf_secret`` (defaults to get_settings())
        audit: Optional audit trail
        clock: Time source (epoch seconds)
        timeout: Idle timeout in seconds
    """

    def __init__(
        self,
        store: StateStore,
        settings: Optional[SecuritySettings] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
        timeout: int = SESSION_TIMEOUT,
    ):
        self.store = store
        self._settings = settings
        self.audit = audit
        self._clock = clock
        self.timeout = timeout

    @property
    def settings(self) -> SecuritySettings:
        return self._settings or get_settings()

    def _key(self, session_token: str) -> str:
        return PREFIX + session_token

    async def _save(self, record: SessionRecord) -> None:
        await self.store.set(
            self._key(record.session_token),
            record.to_dict(),
            ttl=self.timeout + SWEEP_INTERVAL,
        )

    async def _write_back(self, record: SessionRecord) -> bool:
        """Persist changes to a session that still exists; False once destroyed."""
        return await self.store.update(
            self._key(record.session_token),
            record.to_dict(),
            ttl=self.timeout + SWEEP_INTERVAL,
        )

    def _derive_csrf_token(self, session_token: str) -> str:
        key = self.settings.require("csrf_secret").encode()
        nonce = secrets.token_hex(16)
        return hmac.new(key, f"{session_token}:{nonce}".encode(), hashlib.sha256).hexdigest()

    async def create_session(
        self,
        phone_number: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> SessionCredentials:
        """
        Start an authenticated session.

        Raises:
            ConfigurationError: CSRF_SECRET is not configured
        """
        session_token = secrets.token_urlsafe(32)
        csrf_token = self._derive_csrf_token(session_token)
        now = self._clock()

        await self._save(SessionRecord(
            session_token=session_token,
            csrf_token=csrf_token,
            created_at=now,
            last_activity=now,
            authenticated=True,
            user_id=user_id,
            phone_number=phone_number,
        ))

        logger.info(
            "Session created",
            user_id=user_id,
            phone=mask_phone(phone_number) if phone_number else None,
        )
        if self.audit is not None:
            self.audit.record(AuditEventType.SESSION_CREATED, actor_id=user_id)
        return SessionCredentials(session_token=session_token, csrf_token=csrf_token)

    async def _load(self, session_token: Optional[str]) -> Optional[SessionRecord]:
        if not session_token:
            return None
        data = await self.store.get(self._key(session_token))
        if data is None:
            return None
        record = SessionRecord.from_dict(data)
        if record.is_expired(self._clock(), self.timeout):
            await self.store.delete(self._key(session_token))
            logger.info("Session expired", user_id=record.user_id)
            if self.audit is not None:
                self.audit.record(
                    AuditEventType.SESSION_EXPIRED,
                    outcome="failure",
                    actor_id=record.user_id,
                )
            return None
        return record

    async def validate_session(self, session_token: Optional[str]) -> Optional[SessionRecord]:
        """Return the live session and slide its expiry, or None."""
        record = await self._load(session_token)
        if record is None:
            return None
        record.last_activity = self._clock()
        if not await self._write_back(record):
            return None
        return record

    async def update_session(self, session_token: str, **changes: Any) -> bool:
        """
        Update user_id, phone_number or authenticated on a live session.

        Raises:
            ValueError: An unknown field was passed
        """
        unknown = set(changes) - set(MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        record = await self._load(session_token)
        if record is None:
            return False
        for name, value in changes.items():
            setattr(record, name, value)
        record.last_activity = self._clock()
        return await self._write_back(record)

    async def destroy_session(self, session_token: Optional[str]) -> bool:
        if not session_token:
            return False
        removed = await self.store.delete(self._key(session_token))
        if removed:
            logger.info("Session destroyed")
            if self.audit is not None:
                self.audit.record(AuditEventType.SESSION_DESTROYED)
        return removed

    async def sweep_expired(self) -> int:
        """Evict idle sessions."""
        now = self._clock()
        removed = 0
        for key, data in await self.store.scan(PREFIX):
            if now - data["last_activity"] > self.timeout and await self.store.delete(key):
                removed += 1
        if removed:
            logger.info("Sessions swept", removed=removed)
        return removed

    async def stats(self) -> dict:
        now = self._clock()
        entries = await self.store.scan(PREFIX)
        return {
            "total": len(entries),
            "active": sum(
                1 for _, data in entries if now - data["last_activity"] <= self.timeout
            ),
        }

    async def authorize(
        self,
        session_token: Optional[str],
        csrf_token: Optional[str],
    ) -> SessionRecord:
        """
        Gate for protected operations.

        Raises:
            Unauthenticated: No live authenticated session
            CSRFInvalid: CSRF token does not match the session's
        """
        record = await self.validate_session(session_token)
        if record is None or not record.authenticated:
            raise Unauthenticated("Authentication required")

        if not csrf_token or not hmac.compare_digest(
            record.csrf_token.encode(), csrf_token.encode("utf-8", "replace")
        ):
            logger.warning("Session CSRF check failed", user_id=record.user_id)
            raise CSRFInvalid("Invalid CSRF token")
        return record

    def require_auth(
        self,
        handler: Callable[..., Awaitable[Any]],
    ) -> Callable[..., Awaitable[Any]]:
        """
        Decorator for protected coroutines.

        The wrapped coroutine takes ``session_token`` and ``csrf_token``
        keywords and calls ``handler(session, *args, **kwargs)``.
        """
        @functools.wraps(handler)
        async def wrapper(*args, session_token=None, csrf_token=None, **kwargs):
            session = await self.authorize(session_token, csrf_token)
            return await handler(session, *args, **kwargs)

        return wrapper
