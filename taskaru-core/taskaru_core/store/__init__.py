"""
State Store
===========
Pluggable key/value store backing the CSRF, session and token registries.
"""

from .base import StateStore
from .in_memory import InMemoryStateStore
from .redis_store import RedisStateStore
from .factory import build_state_store

__all__ = [
    "StateStore",
    "InMemoryStateStore",
    "RedisStateStore",
    "build_state_store",
]
