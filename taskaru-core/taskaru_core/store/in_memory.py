"""
In-Memory State Store
=====================
Single-process store for development, tests and single-instance deployments.
"""

import asyncio
import copy
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import StateStore


class InMemoryStateStore(StateStore):
    """
    Dict-backed store guarded by an asyncio lock.

    Horizontal scaling needs RedisStateStore instead.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _is_live(self, expires_at: Optional[float]) -> bool:
        return expires_at is None or self._clock() < expires_at

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if not self._is_live(expires_at):
                del self._data[key]
                return None
            return copy.deepcopy(value)

    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            # Re-insert so iteration order reflects write order
            self._data.pop(key, None)
            self._data[key] = (copy.deepcopy(value), expires_at)

    async def update(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> bool:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            entry = self._data.get(key)
            if entry is None or not self._is_live(entry[1]):
                return False
            self._data.pop(key)
            self._data[key] = (copy.deepcopy(value), expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            entry = self._data.pop(key, None)
            return entry is not None and self._is_live(entry[1])

    async def scan(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        async with self._lock:
            snapshot = list(self._data.items())
            expired = [k for k, (_, exp) in snapshot if not self._is_live(exp)]
            for key in expired:
                del self._data[key]
        return [
            (key, copy.deepcopy(value))
            for key, (value, expires_at) in snapshot
            if key.startswith(prefix) and self._is_live(expires_at)
        ]

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()
