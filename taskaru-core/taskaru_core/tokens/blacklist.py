"""
Token Blacklist
===============
Consumed and revoked tokens, keyed by SHA-256 hash.
"""

import time
from typing import Callable, Optional

import structlog

from ..store import StateStore
from .codec import hash_token

logger = structlog.get_logger(__name__)

PREFIX = "token_blacklist:"


class TokenBlacklist:
    """
    Capacity-bounded blacklist on top of a StateStore.

    Only hashes are stored. When the list grows past ``capacity`` the oldest
    half is evicted. Entries also expire with the token they describe.
    """

    def __init__(
        self,
        store: StateStore,
        capacity: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.capacity = capacity
        self._clock = clock

    async def add(self, token: str, expires_at: Optional[float] = None) -> None:
        """Blacklist a token until it would have expired anyway."""
        now = self._clock()
        ttl = max(1.0, expires_at - now) if expires_at else None
        await self.store.set(
            PREFIX + hash_token(token),
            {"added_at": now},
            ttl=ttl,
        )
        await self._enforce_capacity()

    async def contains(self, token: str) -> bool:
        return await self.store.get(PREFIX + hash_token(token)) is not None

    async def size(self) -> int:
        return await self.store.count(PREFIX)

    async def _enforce_capacity(self) -> None:
        entries = await self.store.scan(PREFIX)
        if len(entries) <= self.capacity:
            return

        entries.sort(key=lambda item: item[1].get("added_at", 0.0))
        evict = entries[: len(entries) - self.capacity // 2]
        for key, _ in evict:
            await self.store.delete(key)
        logger.info(
            "Token blacklist trimmed",
            evicted=len(evict),
            remaining=len(entries) - len(evict),
        )
