"""
State Store Interface
=====================
Abstract key/value store with TTLs and single-winner deletes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple


class StateStore(ABC):
    """
    Async key/value store for process-local or shared registry state.

    Values are JSON-compatible dicts. Keys are namespaced by the caller
    with a prefix such as ``csrf:`` or ``session:``.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value for key, or None if absent or expired."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> None:
        """Store value under key, replacing any prior value."""

    @abstractmethod
    async def update(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> bool:
        """
        Replace the value of an existing key.

        Returns:
            False, without writing, when the key is absent or expired
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns:
            True only for the caller that actually removed the entry, so
            concurrent check-then-delete sequences have a single winner.
        """

    @abstractmethod
    async def scan(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return a snapshot of all (key, value) pairs under prefix."""

    async def count(self, prefix: str) -> int:
        """Number of live entries under prefix."""
        return len(await self.scan(prefix))

    async def close(self) -> None:
        """Release any underlying connections."""
