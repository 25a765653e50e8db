"""
In-Memory SMS Gateway
=====================
Records messages instead of sending them. Development and tests only.
"""

import uuid
from dataclasses import dataclass
from typing import List

from .base import SMSGateway, SendResult, MessageStatus


@dataclass
class SentMessage:
    to: str
    body: str


class InMemorySMSGateway(SMSGateway):
    """Gateway that keeps an outbox; set ``fail`` to simulate provider errors."""

    name = "in_memory"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.outbox: List[SentMessage] = []

    async def send_sms(self, to: str, body: str) -> SendResult:
        if self.fail:
            return SendResult(
                success=False,
                status=MessageStatus.FAILED,
                error_code="SIMULATED",
                error_message="Simulated delivery failure",
            )
        self.outbox.append(SentMessage(to=to, body=body))
        return SendResult(
            success=True,
            provider_message_id=f"SM{uuid.uuid4().hex}",
            status=MessageStatus.SENT,
        )

    def last_message_to(self, to: str):
        for message in reversed(self.outbox):
            if message.to == to:
                return message
        return None
