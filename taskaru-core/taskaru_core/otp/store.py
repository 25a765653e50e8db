"""
OTP Store
=========
Persistence contract for issued codes, keyed by phone number.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import OTPRecord


class OTPStore(ABC):
    """
    At most one non-verified record per phone number.

    ``insert`` replaces whatever was stored for the phone before.
    """

    @abstractmethod
    async def insert(self, record: OTPRecord) -> None:
        """Delete any prior record for the phone, then store this one."""

    @abstractmethod
    async def find_active(self, phone_number: str, now: float) -> Optional[OTPRecord]:
        """Non-verified, unexpired record for the phone, or None."""

    @abstractmethod
    async def consume_attempt(
        self,
        phone_number: str,
        max_attempts: int,
        now: float,
    ) -> Optional[int]:
        """
        Claim one verification attempt on the active record.

        The limit check and the increment happen as one step.

        Returns:
            The attempt number claimed, or None when there is no active
            record or its attempts are used up
        """

    @abstractmethod
    async def mark_verified(self, phone_number: str, now: float) -> bool:
        """
        Mark the current record verified.

        Returns:
            False if no unverified record was there to mark
        """

    @abstractmethod
    async def count_since(
        self,
        since: float,
        phone_number: Optional[str] = None,
        request_ip: Optional[str] = None,
    ) -> int:
        """Sends recorded since ``since``, optionally for one phone or IP."""

    @abstractmethod
    async def distinct_phones_for_ip(self, request_ip: str, since: float) -> int:
        """Distinct phone numbers targeted from an IP since ``since``."""


class InMemoryOTPStore(OTPStore):
    """
    Process-local OTP store.

    Keeps the current record per phone plus a send log so the rate
    limiter can count history that ``insert`` has already replaced.
    """

    def __init__(self):
        self._records: Dict[str, OTPRecord] = {}
        self._send_log: List[OTPRecord] = []
        self._lock = asyncio.Lock()

    async def insert(self, record: OTPRecord) -> None:
        async with self._lock:
            self._records.pop(record.phone_number, None)
            self._records[record.phone_number] = copy.copy(record)
            self._send_log.append(copy.copy(record))

    async def find_active(self, phone_number: str, now: float) -> Optional[OTPRecord]:
        async with self._lock:
            record = self._records.get(phone_number)
            if record is None or not record.is_active(now):
                return None
            return copy.copy(record)

    async def consume_attempt(
        self,
        phone_number: str,
        max_attempts: int,
        now: float,
    ) -> Optional[int]:
        async with self._lock:
            record = self._records.get(phone_number)
            if record is None or not record.is_active(now) or record.attempts >= max_attempts:
                return None
            record.attempts += 1
            return record.attempts

    async def mark_verified(self, phone_number: str, now: float) -> bool:
        async with self._lock:
            record = self._records.get(phone_number)
            if record is None or record.verified:
                return False
            record.verified = True
            record.verified_at = now
            return True

    async def count_since(
        self,
        since: float,
        phone_number: Optional[str] = None,
        request_ip: Optional[str] = None,
    ) -> int:
        async with self._lock:
            return sum(
                1
                for r in self._send_log
                if r.created_at >= since
                and (phone_number is None or r.phone_number == phone_number)
                and (request_ip is None or r.request_ip == request_ip)
            )

    async def distinct_phones_for_ip(self, request_ip: str, since: float) -> int:
        async with self._lock:
            return len({
                r.phone_number
                for r in self._send_log
                if r.created_at >= since and r.request_ip == request_ip
            })

    async def prune(self, before: float, now: Optional[float] = None) -> int:
        """
        Drop send-log entries older than ``before``.

        With ``now``, verified or expired records are dropped as well.
        Returns the number of send-log entries removed.
        """
        async with self._lock:
            kept = [r for r in self._send_log if r.created_at >= before]
            removed = len(self._send_log) - len(kept)
            self._send_log = kept
            if now is not None:
                self._records = {
                    phone: record
                    for phone, record in self._records.items()
                    if record.is_active(now)
                }
            return removed

    def get(self, phone_number: str) -> Optional[OTPRecord]:
        """Current record regardless of state (tests and diagnostics)."""
        record = self._records.get(phone_number)
        return copy.copy(record) if record else None
