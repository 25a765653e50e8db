"""
OTP Send Limiter
================
Layered send limits computed from the OTP store's send history.

Checks are read-only: the send itself is what gets counted, once the
record is inserted.
"""

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from ..config import SecuritySettings
from .models import RateLimitInfo, RateLimitLayer

if TYPE_CHECKING:
    from ..otp.store import OTPStore

logger = structlog.get_logger(__name__)

HOUR = 3600


@dataclass
class OTPSendPolicy:
    """Thresholds for OTP sends."""
    phone_per_hour: int = 3
    ip_per_hour: int = 10
    global_per_hour: int = 100
    fanout_max_phones: int = 5
    fanout_window_seconds: int = 600

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "OTPSendPolicy":
        return cls(
            phone_per_hour=settings.otp_phone_limit_per_hour,
            ip_per_hour=settings.otp_ip_limit_per_hour,
            global_per_hour=settings.otp_global_limit_per_hour,
            fanout_max_phones=settings.otp_fanout_max_phones,
            fanout_window_seconds=settings.otp_fanout_window_seconds,
        )

    @property
    def retention_seconds(self) -> int:
        """How far back the limiter ever looks."""
        return max(HOUR, self.fanout_window_seconds)


class OTPSendLimiter:
    """
    Per-phone, per-IP, global and fan-out limits.

    The first violated layer is reported. Per-IP and fan-out checks only
    run when the client IP is known.
    """

    def __init__(
        self,
        store: "OTPStore",
        policy: Optional[OTPSendPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.policy = policy or OTPSendPolicy()
        self._clock = clock

    def _blocked(self, layer: RateLimitLayer, limit: int, current: int, window: int) -> RateLimitInfo:
        logger.warning(
            "OTP send limit reached",
            layer=layer.value,
            limit=limit,
            current=current,
        )
        return RateLimitInfo(
            allowed=False,
            limit=limit,
            current=current,
            layer=layer,
            retry_after=window,
        )

    async def check(self, phone_number: str, client_ip: Optional[str] = None) -> RateLimitInfo:
        """
        Decide whether a send to ``phone_number`` may proceed.

        Args:
            phone_number: Normalized phone number
            client_ip: Requesting IP, if known

        Returns:
            RateLimitInfo; ``layer`` names the violated limit when blocked
        """
        now = self._clock()
        hour_ago = now - HOUR
        policy = self.policy

        phone_count = await self.store.count_since(hour_ago, phone_number=phone_number)
        if phone_count >= policy.phone_per_hour:
            return self._blocked(RateLimitLayer.PHONE, policy.phone_per_hour, phone_count, HOUR)

        if client_ip:
            ip_count = await self.store.count_since(hour_ago, request_ip=client_ip)
            if ip_count >= policy.ip_per_hour:
                return self._blocked(RateLimitLayer.IP, policy.ip_per_hour, ip_count, HOUR)

        global_count = await self.store.count_since(hour_ago)
        if global_count >= policy.global_per_hour:
            return self._blocked(RateLimitLayer.GLOBAL, policy.global_per_hour, global_count, HOUR)

        if client_ip:
            distinct = await self.store.distinct_phones_for_ip(
                client_ip, now - policy.fanout_window_seconds
            )
            if distinct > policy.fanout_max_phones:
                return self._blocked(
                    RateLimitLayer.FANOUT,
                    policy.fanout_max_phones,
                    distinct,
                    policy.fanout_window_seconds,
                )

        return RateLimitInfo(
            allowed=True,
            limit=policy.phone_per_hour,
            current=phone_count,
        )
