"""
Shared fixtures for taskaru-core tests.
"""

import pytest

from taskaru_core.audit import AuditLogger
from taskaru_core.config import SecuritySettings
from taskaru_core.store import InMemoryStateStore

JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789"
CSRF_SECRET = "test-csrf-secret-0123456789abcdef012345678"


class FakeClock:
    """Controllable time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return SecuritySettings(
        environment="test",
        jwt_secret=JWT_SECRET,
        csrf_secret=CSRF_SECRET,
    )


@pytest.fixture
def store(clock):
    return InMemoryStateStore(clock=clock)


@pytest.fixture
def audit():
    return AuditLogger("taskaru-core-test")
