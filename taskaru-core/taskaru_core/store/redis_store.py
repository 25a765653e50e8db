"""
Redis State Store
=================
Shared store so several API instances see the same registries.
"""

import json
import math
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as aioredis
import structlog

from .base import StateStore

logger = structlog.get_logger(__name__)


class RedisStateStore(StateStore):
    """
    Redis-backed store using JSON values and native key expiry.

    Args:
        redis_client: ``redis.asyncio.Redis`` client (decode_responses=True)
        namespace: Prefix applied to every key
    """

    def __init__(self, redis_client, namespace: str = "taskaru"):
        self.redis = redis_client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "taskaru") -> "RedisStateStore":
        return cls(aioredis.from_url(url, decode_responses=True), namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self.namespace) + 1:]

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> None:
        payload = json.dumps(value, separators=(",", ":"))
        if ttl is not None:
            await self.redis.set(self._key(key), payload, ex=max(1, math.ceil(ttl)))
        else:
            await self.redis.set(self._key(key), payload)

    async def update(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> bool:
        # SET XX only writes when the key already exists
        payload = json.dumps(value, separators=(",", ":"))
        ex = max(1, math.ceil(ttl)) if ttl is not None else None
        written = await self.redis.set(self._key(key), payload, ex=ex, xx=True)
        return bool(written)

    async def delete(self, key: str) -> bool:
        # DEL reports how many keys this call removed
        removed = await self.redis.delete(self._key(key))
        return removed > 0

    async def scan(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        results: List[Tuple[str, Dict[str, Any]]] = []
        async for full_key in self.redis.scan_iter(match=f"{self._key(prefix)}*"):
            raw = await self.redis.get(full_key)
            if raw is None:
                continue
            results.append((self._strip(full_key), json.loads(raw)))
        return results

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis state store closed", namespace=self.namespace)
