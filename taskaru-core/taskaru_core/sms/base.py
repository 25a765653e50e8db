"""
SMS Gateway Interface
=====================
Base classes for SMS provider integrations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum
import structlog

logger = structlog.get_logger(__name__)


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class SendResult:
    """Result of a message send operation."""
    success: bool
    provider_message_id: Optional[str] = None
    status: MessageStatus = MessageStatus.PENDING
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


class SMSGateway(ABC):
    """
    Abstract base class for SMS gateways.

    ``send_sms`` reports delivery problems through ``SendResult`` and does
    not raise for them.
    """

    name: str = "base"

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        logger.info("SMS gateway closed", provider=self.name)

    @abstractmethod
    async def send_sms(self, to: str, body: str) -> SendResult:
        """
        Send an SMS message.

        Args:
            to: Recipient phone number (E.164 format)
            body: Message content

        Returns:
            SendResult with provider response
        """
