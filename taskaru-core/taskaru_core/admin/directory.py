"""
Admin Directory
===============
Lookup of admin panel credentials.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog

from ..supabase import SupabaseRestClient

logger = structlog.get_logger(__name__)

ADMIN_TABLE = "admin_credentials"


@dataclass
class AdminAccount:
    id: str
    email: str
    password_hash: str
    role: str = "admin"
    is_active: bool = True
    last_login: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" and self.is_active


class AdminDirectory(ABC):
    """Where admin accounts live."""

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[AdminAccount]:
        ...

    @abstractmethod
    async def update_password_hash(self, account_id: str, password_hash: str) -> None:
        ...

    @abstractmethod
    async def record_login(self, account_id: str) -> None:
        ...


class InMemoryAdminDirectory(AdminDirectory):
    """Accounts held in a dict keyed by lower-cased email."""

    def __init__(self):
        self._accounts: Dict[str, AdminAccount] = {}
        self._lock = asyncio.Lock()

    def add(self, account: AdminAccount) -> None:
        self._accounts[account.email.lower()] = account

    def _by_id(self, account_id: str) -> Optional[AdminAccount]:
        for account in self._accounts.values():
            if account.id == account_id:
                return account
        return None

    async def find_by_email(self, email: str) -> Optional[AdminAccount]:
        account = self._accounts.get(email.lower())
        return replace(account) if account else None

    async def update_password_hash(self, account_id: str, password_hash: str) -> None:
        async with self._lock:
            account = self._by_id(account_id)
            if account is not None:
                account.password_hash = password_hash

    async def record_login(self, account_id: str) -> None:
        async with self._lock:
            account = self._by_id(account_id)
            if account is not None:
                account.last_login = datetime.now(timezone.utc).isoformat()


class SupabaseAdminDirectory(AdminDirectory):
    """Accounts in the ``admin_credentials`` table."""

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    async def find_by_email(self, email: str) -> Optional[AdminAccount]:
        rows = await self.client.select(
            ADMIN_TABLE,
            {"email": f"eq.{email.lower()}"},
            columns="id,email,password_hash,role,is_active,last_login",
            limit=1,
        )
        if not rows:
            return None
        row = rows[0]
        return AdminAccount(
            id=str(row["id"]),
            email=row["email"],
            password_hash=row.get("password_hash") or "",
            role=row.get("role") or "",
            is_active=bool(row.get("is_active")),
            last_login=row.get("last_login"),
        )

    async def update_password_hash(self, account_id: str, password_hash: str) -> None:
        await self.client.update(
            ADMIN_TABLE,
            {"id": f"eq.{account_id}"},
            {"password_hash": password_hash},
        )
        logger.info("Admin password hash upgraded", account_id=account_id)

    async def record_login(self, account_id: str) -> None:
        await self.client.update(
            ADMIN_TABLE,
            {"id": f"eq.{account_id}"},
            {"last_login": datetime.now(timezone.utc).isoformat()},
        )
