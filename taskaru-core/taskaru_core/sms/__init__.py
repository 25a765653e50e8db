"""
SMS gateways for OTP delivery.
"""

from .base import MessageStatus, SendResult, SMSGateway
from .in_memory import InMemorySMSGateway, SentMessage
from .twilio import TwilioGateway

__all__ = [
    "SMSGateway",
    "SendResult",
    "MessageStatus",
    "TwilioGateway",
    "InMemorySMSGateway",
    "SentMessage",
]
