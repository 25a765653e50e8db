"""
Admin Authentication
====================
Password login for the admin panel, issuing an access/refresh pair.
"""

import re
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog
from argon2 import PasswordHasher

from ..audit import AuditEventType, AuditLogger
from ..password import hash_password, verify_and_upgrade
from ..tokens import SecureTokenManager, TokenPair
from .directory import AdminAccount, AdminDirectory

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AdminLoginFailure(str, Enum):
    INVALID_INPUT = "invalid_input"
    UNKNOWN_ACCOUNT = "unknown_account"
    WRONG_PASSWORD = "wrong_password"
    ACCOUNT_DISABLED = "account_disabled"
    NOT_ADMIN = "not_admin"


@dataclass
class AdminLoginResult:
    success: bool
    failure: Optional[AdminLoginFailure] = None
    account: Optional[AdminAccount] = None
    tokens: Optional[TokenPair] = None
    session_id: Optional[str] = None


def _mask_email(email: str) -> str:
    return email[:3] + "***"


class AdminAuthenticator:
    """
    Credential check, then role check, then token issuance.

    Internal failure kinds stay distinct for logging and audit; the HTTP
    layer collapses them into one message.
    """

    def __init__(
        self,
        directory: AdminDirectory,
        tokens: SecureTokenManager,
        audit: Optional[AuditLogger] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.directory = directory
        self.tokens = tokens
        self.audit = audit
        self.hasher = hasher
        self._dummy: Optional[tuple] = None

    async def _dummy_hash(self) -> str:
        """Hash of a random password under the current hasher, for unknown emails."""
        if self._dummy is None or self._dummy[0] is not self.hasher:
            self._dummy = (self.hasher, await hash_password(secrets.token_urlsafe(32), self.hasher))
        return self._dummy[1]

    def _fail(
        self,
        failure: AdminLoginFailure,
        email: str,
        ip_address: Optional[str],
        account: Optional[AdminAccount] = None,
    ) -> AdminLoginResult:
        logger.warning(
            "Admin login failed",
            email=_mask_email(email),
            reason=failure.value,
        )
        if self.audit is not None:
            self.audit.record(
                AuditEventType.ADMIN_LOGIN_FAILED,
                outcome="failure",
                reason=failure.value,
                actor_id=account.id if account else None,
                ip_address=ip_address,
            )
        return AdminLoginResult(success=False, failure=failure)

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> AdminLoginResult:
        """
        Authenticate an admin.

        Raises:
            ConfigurationError: Token signing secret missing
        """
        email = (email or "").strip()
        if not email or not password or not EMAIL_PATTERN.match(email):
            return AdminLoginResult(success=False, failure=AdminLoginFailure.INVALID_INPUT)

        account = await self.directory.find_by_email(email)
        if account is None:
            # Same hashing work as a known account
            await verify_and_upgrade(password, await self._dummy_hash(), self.hasher)
            return self._fail(AdminLoginFailure.UNKNOWN_ACCOUNT, email, ip_address)

        valid, upgraded_hash = await verify_and_upgrade(password, account.password_hash, self.hasher)
        if not valid:
            return self._fail(AdminLoginFailure.WRONG_PASSWORD, email, ip_address, account)

        if not account.is_active:
            return self._fail(AdminLoginFailure.ACCOUNT_DISABLED, email, ip_address, account)
        if account.role != "admin":
            return self._fail(AdminLoginFailure.NOT_ADMIN, email, ip_address, account)

        if upgraded_hash:
            await self.directory.update_password_hash(account.id, upgraded_hash)
        await self.directory.record_login(account.id)

        session_id = secrets.token_urlsafe(16)
        pair = await self.tokens.generate_token_pair(
            user_id=account.id,
            email=account.email,
            session_id=session_id,
            device_id=device_id or "admin-panel",
            ip_address=ip_address or "unknown",
            scope=["admin"],
        )

        logger.info("Admin login succeeded", account_id=account.id, hash_upgraded=bool(upgraded_hash))
        if self.audit is not None:
            self.audit.record(
                AuditEventType.ADMIN_LOGIN,
                actor_id=account.id,
                ip_address=ip_address,
            )
        return AdminLoginResult(
            success=True,
            account=account,
            tokens=pair,
            session_id=session_id,
        )
