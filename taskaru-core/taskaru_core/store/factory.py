"""
State Store Selection
=====================
Pick the backing store once at startup.
"""

from typing import Optional

import structlog

from ..config import SecuritySettings, get_settings
from .base import StateStore
from .in_memory import InMemoryStateStore
from .redis_store import RedisStateStore

logger = structlog.get_logger(__name__)


def build_state_store(settings: Optional[SecuritySettings] = None) -> StateStore:
    """Redis when REDIS_URL is configured, otherwise a process-local store."""
    settings = settings or get_settings()

    if settings.redis_url:
        logger.info("Using Redis state store")
        return RedisStateStore.from_url(settings.redis_url)

    if settings.is_production:
        logger.warning(
            "Using in-memory state store in production; "
            "registries are not shared across instances"
        )
    return InMemoryStateStore()
