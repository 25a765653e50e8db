"""
Supabase OTP Store
==================
OTP records in the ``sms_verifications`` table, reached over PostgREST.

Send history for rate limiting is kept in ``sms_send_events`` because
``insert`` deletes the previous verification row for the phone.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from ..logging_config import mask_phone
from ..supabase import SupabaseRestClient
from .models import OTPRecord
from .store import OTPStore

logger = structlog.get_logger(__name__)

VERIFICATIONS_TABLE = "sms_verifications"
SEND_EVENTS_TABLE = "sms_send_events"
CONSUME_RETRIES = 10


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _epoch(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def _row_to_record(row: Dict[str, Any]) -> OTPRecord:
    return OTPRecord(
        phone_number=row["phone_number"],
        code=row["otp_code"],
        created_at=_epoch(row.get("created_at")) or 0.0,
        expires_at=_epoch(row["expires_at"]),
        attempts=int(row.get("attempts") or 0),
        verified=bool(row.get("is_verified")),
        verified_at=_epoch(row.get("verified_at")),
        request_ip=row.get("request_ip"),
    )


class SupabaseOTPStore(OTPStore):
    """OTPStore backed by the managed Postgres database."""

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    async def insert(self, record: OTPRecord) -> None:
        phone_filter = {"phone_number": f"eq.{record.phone_number}"}
        await self.client.delete(VERIFICATIONS_TABLE, phone_filter)
        await self.client.insert(VERIFICATIONS_TABLE, {
            "phone_number": record.phone_number,
            "otp_code": record.code,
            "created_at": _iso(record.created_at),
            "expires_at": _iso(record.expires_at),
            "attempts": 0,
            "is_verified": False,
            "request_ip": record.request_ip or "unknown",
        })
        await self.client.insert(SEND_EVENTS_TABLE, {
            "phone_number": record.phone_number,
            "request_ip": record.request_ip or "unknown",
            "created_at": _iso(record.created_at),
        })
        logger.debug("OTP record stored", phone=mask_phone(record.phone_number))

    async def find_active(self, phone_number: str, now: float) -> Optional[OTPRecord]:
        rows = await self.client.select(
            VERIFICATIONS_TABLE,
            {
                "phone_number": f"eq.{phone_number}",
                "is_verified": "eq.false",
                "expires_at": f"gt.{_iso(now)}",
            },
            order="created_at.desc",
            limit=1,
        )
        return _row_to_record(rows[0]) if rows else None

    async def consume_attempt(
        self,
        phone_number: str,
        max_attempts: int,
        now: float,
    ) -> Optional[int]:
        # Compare-and-set on the attempts column; a lost race re-reads the row
        for _ in range(CONSUME_RETRIES):
            record = await self.find_active(phone_number, now)
            if record is None or record.attempts >= max_attempts:
                return None
            updated = await self.client.update(
                VERIFICATIONS_TABLE,
                {
                    "phone_number": f"eq.{phone_number}",
                    "is_verified": "eq.false",
                    "attempts": f"eq.{record.attempts}",
                },
                {"attempts": record.attempts + 1},
            )
            if updated:
                return record.attempts + 1
        logger.warning("OTP attempt not claimed after retries", phone=mask_phone(phone_number))
        return None

    async def mark_verified(self, phone_number: str, now: float) -> bool:
        updated = await self.client.update(
            VERIFICATIONS_TABLE,
            {"phone_number": f"eq.{phone_number}", "is_verified": "eq.false"},
            {"is_verified": True, "verified_at": _iso(now)},
        )
        return bool(updated)

    async def count_since(
        self,
        since: float,
        phone_number: Optional[str] = None,
        request_ip: Optional[str] = None,
    ) -> int:
        filters = {"created_at": f"gte.{_iso(since)}"}
        if phone_number is not None:
            filters["phone_number"] = f"eq.{phone_number}"
        if request_ip is not None:
            filters["request_ip"] = f"eq.{request_ip}"
        rows = await self.client.select(SEND_EVENTS_TABLE, filters, columns="created_at")
        return len(rows)

    async def distinct_phones_for_ip(self, request_ip: str, since: float) -> int:
        rows = await self.client.select(
            SEND_EVENTS_TABLE,
            {"request_ip": f"eq.{request_ip}", "created_at": f"gte.{_iso(since)}"},
            columns="phone_number",
        )
        return len({row["phone_number"] for row in rows})
