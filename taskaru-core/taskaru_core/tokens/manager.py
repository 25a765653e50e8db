"""
Secure Token Manager
====================
Issues access/refresh pairs with rotation-on-refresh, device/IP binding and
a revocation blacklist.
"""

import secrets
import time
from typing import Callable, List, Optional, Sequence

import structlog

from ..audit import AuditEventType, AuditLogger
from ..errors import InvalidSignatureError, MalformedTokenError
from ..store import StateStore
from .blacklist import TokenBlacklist
from .codec import TokenCodec
from .ip_binding import IPBindingMode, ip_allowed
from .models import TokenPair, TokenPayload, TokenType

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TTL = 15 * 60
REFRESH_TOKEN_TTL = 7 * 24 * 60 * 60
ROTATION_THRESHOLD = 5 * 60
ROTATION_HISTORY_TTL = 24 * 60 * 60

ISSUER = "moneyticket-secure"
AUDIENCE = "moneyticket-app"

ROTATION_PREFIX = "token_rotation:"
REFRESH_PREFIX = "refresh_outstanding:"
REVOKED_SESSION_PREFIX = "revoked_session:"


def generate_token_id() -> str:
    """Unique token id: base36 millisecond timestamp plus 128 random bits."""
    millis = int(time.time() * 1000)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    stamp = ""
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = digits[rem] + stamp
    return f"{stamp or '0'}_{secrets.token_hex(16)}"


class SecureTokenManager:
    """
    Access/refresh token issuance and verification.

    Args:
        codec: Token codec holding the signing secret source
        store: State store for the blacklist, rotation history and session revocations
        audit: Optional audit trail
        clock: Time source (epoch seconds)
        ip_binding: How strictly a refresh must match the issuing IP
        blacklist_capacity: Blacklist size before the oldest half is evicted
    """

    def __init__(
        self,
        codec: TokenCodec,
        store: StateStore,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
        ip_binding: IPBindingMode = IPBindingMode.SUBNET,
        blacklist_capacity: int = 10000,
        issuer: str = ISSUER,
        audience: str = AUDIENCE,
    ):
        self.codec = codec
        self.store = store
        self.audit = audit
        self._clock = clock
        self.ip_binding = IPBindingMode(ip_binding)
        self.issuer = issuer
        self.audience = audience
        self.blacklist = TokenBlacklist(store, capacity=blacklist_capacity, clock=clock)

    def _audit(self, event_type: AuditEventType, **kwargs) -> None:
        if self.audit is not None:
            self.audit.record(event_type, **kwargs)

    def _build_payload(
        self,
        token_type: TokenType,
        now: float,
        user_id: str,
        email: str,
        session_id: str,
        device_id: str,
        ip_address: str,
        scope: Sequence[str],
    ) -> TokenPayload:
        ttl = ACCESS_TOKEN_TTL if token_type == TokenType.ACCESS else REFRESH_TOKEN_TTL
        return TokenPayload(
            sub=user_id,
            email=email,
            iat=now,
            exp=now + ttl,
            jti=generate_token_id(),
            typ=token_type.value,
            aud=self.audience,
            iss=self.issuer,
            scope=list(scope),
            session_id=session_id,
            device_id=device_id,
            ip_address=ip_address,
        )

    async def generate_token_pair(
        self,
        user_id: str,
        email: str,
        session_id: str,
        device_id: str,
        ip_address: str,
        scope: Optional[Sequence[str]] = None,
    ) -> TokenPair:
        """
        Mint a signed access/refresh pair.

        Raises:
            ConfigurationError: No signing secret available
        """
        now = self._clock()
        scope = list(scope) if scope is not None else ["read", "write"]

        access = self._build_payload(
            TokenType.ACCESS, now, user_id, email, session_id, device_id, ip_address, scope
        )
        refresh = self._build_payload(
            TokenType.REFRESH, now, user_id, email, session_id, device_id, ip_address, ["refresh"]
        )

        access_token = self.codec.sign(access.to_dict())
        refresh_token = self.codec.sign(refresh.to_dict())

        await self.store.set(
            ROTATION_PREFIX + access.jti,
            {"issued_at": now, "session_id": session_id, "user_id": user_id},
            ttl=ROTATION_HISTORY_TTL,
        )
        await self.store.set(
            REFRESH_PREFIX + refresh.jti,
            {"issued_at": now, "session_id": session_id},
            ttl=REFRESH_TOKEN_TTL,
        )

        logger.info(
            "Token pair issued",
            user_id=user_id,
            jti=access.jti,
            session_id=session_id,
            device_id=device_id,
            scope=",".join(scope),
        )
        self._audit(
            AuditEventType.TOKEN_ISSUED,
            actor_id=user_id,
            subject=access.jti,
            ip_address=ip_address,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=access.exp,
            token_id=access.jti,
            refresh_expires_at=refresh.exp,
        )

    async def verify_token(
        self,
        token: str,
        expected_type: Optional[TokenType] = None,
    ) -> Optional[TokenPayload]:
        """
        Verify a token.

        Checks run in order and stop at the first failure: blacklist,
        signature, structure, expiry, type, issuer/audience, session
        revocation.

        Returns:
            The payload, or None if any check fails

        Raises:
            ConfigurationError: No signing secret available
        """
        if await self.blacklist.contains(token):
            logger.warning("Blacklisted token presented")
            return None

        try:
            claims = self.codec.verify(token)
        except (MalformedTokenError, InvalidSignatureError) as e:
            logger.warning("Token rejected", reason=e.code)
            return None

        payload = TokenPayload.from_dict(claims)
        if payload is None:
            logger.warning("Token structure invalid", jti=claims.get("jti"))
            return None

        if self._clock() >= payload.exp:
            logger.info("Token expired", jti=payload.jti, exp=payload.exp)
            return None

        if expected_type is not None and payload.typ != TokenType(expected_type).value:
            logger.warning(
                "Token type mismatch",
                expected=TokenType(expected_type).value,
                actual=payload.typ,
            )
            return None

        if payload.iss != self.issuer or payload.aud != self.audience:
            logger.warning("Token issuer or audience invalid", iss=payload.iss, aud=payload.aud)
            return None

        if payload.session_id:
            revoked = await self.store.get(REVOKED_SESSION_PREFIX + payload.session_id)
            if revoked is not None and payload.iat <= revoked["revoked_at"]:
                logger.warning("Token belongs to a revoked session", session_id=payload.session_id)
                return None

        return payload

    async def refresh_token_pair(
        self,
        refresh_token: str,
        device_id: str,
        ip_address: str,
    ) -> Optional[TokenPair]:
        """
        Consume a refresh token and mint a new pair.

        The presented refresh token is blacklisted before the new pair is
        issued, so a refresh token works at most once.

        Returns:
            New pair, or None when the caller must re-authenticate
        """
        payload = await self.verify_token(refresh_token, TokenType.REFRESH)
        if payload is None:
            self._audit(
                AuditEventType.TOKEN_REFRESH_REJECTED,
                outcome="failure",
                reason="invalid_refresh_token",
                ip_address=ip_address,
            )
            return None

        if payload.device_id != device_id:
            logger.warning(
                "Refresh rejected: device mismatch",
                user_id=payload.sub,
                expected=payload.device_id,
                actual=device_id,
            )
            self._audit(
                AuditEventType.TOKEN_REFRESH_REJECTED,
                outcome="blocked",
                reason="device_mismatch",
                actor_id=payload.sub,
                subject=payload.jti,
                ip_address=ip_address,
            )
            return None

        if not ip_allowed(self.ip_binding, payload.ip_address, ip_address):
            logger.warning(
                "Refresh rejected: IP outside bound network",
                user_id=payload.sub,
                old_ip=payload.ip_address,
                new_ip=ip_address,
            )
            self._audit(
                AuditEventType.TOKEN_REFRESH_REJECTED,
                outcome="blocked",
                reason="ip_mismatch",
                actor_id=payload.sub,
                subject=payload.jti,
                ip_address=ip_address,
            )
            return None

        # Only one caller can consume the outstanding marker
        if not await self.store.delete(REFRESH_PREFIX + payload.jti):
            logger.warning("Refresh token already consumed", user_id=payload.sub, jti=payload.jti)
            self._audit(
                AuditEventType.TOKEN_REFRESH_REJECTED,
                outcome="blocked",
                reason="already_consumed",
                actor_id=payload.sub,
                subject=payload.jti,
                ip_address=ip_address,
            )
            return None
        # The missing marker alone rejects replays; blacklisting is a second record
        await self.blacklist.add(refresh_token, expires_at=payload.exp)

        pair = await self.generate_token_pair(
            payload.sub,
            payload.email,
            payload.session_id,
            payload.device_id,
            ip_address,
            payload.scope if payload.scope != ["refresh"] else None,
        )

        logger.info(
            "Token pair refreshed",
            user_id=payload.sub,
            old_jti=payload.jti,
            new_jti=pair.token_id,
        )
        self._audit(
            AuditEventType.TOKEN_REFRESHED,
            actor_id=payload.sub,
            subject=pair.token_id,
            ip_address=ip_address,
            payload={"previous_jti": payload.jti},
        )
        return pair

    async def revoke_token(self, token: str) -> bool:
        """
        Blacklist a token with a valid signature.

        Returns:
            False if the token is malformed or not signed by us
        """
        try:
            claims = self.codec.verify(token)
        except (MalformedTokenError, InvalidSignatureError):
            return False

        exp = claims.get("exp")
        await self.blacklist.add(token, expires_at=float(exp) if exp else None)
        logger.info("Token revoked", jti=claims.get("jti"), user_id=claims.get("sub"))
        self._audit(
            AuditEventType.TOKEN_REVOKED,
            actor_id=claims.get("sub"),
            subject=claims.get("jti"),
        )
        return True

    async def revoke_session(self, session_id: str) -> int:
        """
        Invalidate every token issued to a session so far.

        Returns:
            Number of rotation-history entries dropped for the session
        """
        now = self._clock()
        await self.store.set(
            REVOKED_SESSION_PREFIX + session_id,
            {"revoked_at": now},
            ttl=REFRESH_TOKEN_TTL,
        )

        dropped = 0
        for key, entry in await self.store.scan(ROTATION_PREFIX):
            if entry.get("session_id") == session_id:
                if await self.store.delete(key):
                    dropped += 1
        for key, entry in await self.store.scan(REFRESH_PREFIX):
            if entry.get("session_id") == session_id:
                await self.store.delete(key)

        await self.cleanup()
        logger.info("Session tokens revoked", session_id=session_id, dropped=dropped)
        self._audit(AuditEventType.TOKEN_SESSION_REVOKED, subject=session_id)
        return dropped

    def should_rotate_token(self, payload: TokenPayload) -> bool:
        """True when the token expires within the rotation threshold."""
        return payload.exp - self._clock() <= ROTATION_THRESHOLD

    async def cleanup(self) -> int:
        """Drop rotation history older than 24 hours."""
        now = self._clock()
        removed = 0
        for key, entry in await self.store.scan(ROTATION_PREFIX):
            if now - entry.get("issued_at", 0.0) > ROTATION_HISTORY_TTL:
                if await self.store.delete(key):
                    removed += 1
        return removed

    async def rotation_history(self, session_id: Optional[str] = None) -> List[str]:
        """Access token ids issued, optionally for one session."""
        return [
            key[len(ROTATION_PREFIX):]
            for key, entry in await self.store.scan(ROTATION_PREFIX)
            if session_id is None or entry.get("session_id") == session_id
        ]

    async def stats(self) -> dict:
        return {
            "blacklisted": await self.blacklist.size(),
            "rotation_history": await self.store.count(ROTATION_PREFIX),
        }
