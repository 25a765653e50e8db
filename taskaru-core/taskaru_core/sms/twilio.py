"""
Twilio SMS Gateway
==================
Production gateway for the Twilio Messages API.
"""

import httpx
from typing import Optional
from base64 import b64encode
import structlog

from ..config import SecuritySettings, get_settings
from ..errors import ConfigurationError
from ..logging_config import mask_phone
from .base import SMSGateway, SendResult, MessageStatus

logger = structlog.get_logger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioGateway(SMSGateway):
    """
    Twilio SMS gateway.

    Args:
        account_sid: Twilio account SID
        auth_token: Twilio auth token
        from_number: Sender number (E.164)
        timeout: HTTP timeout in seconds
        transport: Optional httpx transport (tests)
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not account_sid or not auth_token or not from_number:
            raise ConfigurationError("Twilio credentials are not configured")
        self.account_sid = account_sid
        self.from_number = from_number
        self.base_url = f"{TWILIO_API_BASE}/Accounts/{account_sid}"

        auth = b64encode(f"{account_sid}:{auth_token}".encode()).decode()
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Basic {auth}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Optional[SecuritySettings] = None) -> "TwilioGateway":
        settings = settings or get_settings()
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            timeout=settings.sms_timeout_seconds,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
        await super().close()

    async def send_sms(self, to: str, body: str) -> SendResult:
        """Send SMS via Twilio."""
        payload = {
            "To": to,
            "From": self.from_number,
            "Body": body,
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/Messages.json",
                data=payload,
            )

            if response.status_code == 201:
                data = response.json()
                logger.info(
                    "Twilio message accepted",
                    to=mask_phone(to),
                    sid=data.get("sid"),
                    status=data.get("status"),
                )
                return SendResult(
                    success=True,
                    provider_message_id=data["sid"],
                    status=self._map_status(data.get("status", "")),
                    raw_response=data,
                )

            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            logger.warning(
                "Twilio rejected message",
                to=mask_phone(to),
                http_status=response.status_code,
                twilio_code=error_data.get("code"),
            )
            return SendResult(
                success=False,
                status=MessageStatus.FAILED,
                error_code=str(error_data.get("code", response.status_code)),
                error_message=error_data.get("message", "Unknown error"),
                raw_response=error_data,
            )
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("Twilio send failed", to=mask_phone(to), error=str(e))
            return SendResult(
                success=False,
                status=MessageStatus.FAILED,
                error_message=str(e),
            )

    def _map_status(self, twilio_status: str) -> MessageStatus:
        """Map Twilio status to internal status."""
        mapping = {
            "queued": MessageStatus.PENDING,
            "accepted": MessageStatus.PENDING,
            "sending": MessageStatus.PENDING,
            "sent": MessageStatus.SENT,
            "delivered": MessageStatus.DELIVERED,
            "undelivered": MessageStatus.FAILED,
            "failed": MessageStatus.FAILED,
        }
        return mapping.get(twilio_status.lower(), MessageStatus.PENDING)
