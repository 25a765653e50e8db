"""
Infrastructure Tests
====================
State stores, audit chaining, settings, logging and periodic tasks.
"""

import asyncio
import json

import pytest


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the state store."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, xx=False):
        if xx and key not in self.data:
            return None
        self.data[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match):
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def aclose(self):
        self.closed = True


class TestInMemoryStateStore:
    """Tests for the process-local state store."""

    @pytest.mark.asyncio
    async def test_set_get_copy(self, store):
        """Returned values should be copies."""
        await store.set("k", {"a": [1]})

        value = await store.get("k")
        value["a"].append(2)

        assert await store.get("k") == {"a": [1]}

    @pytest.mark.asyncio
    async def test_ttl(self, store, clock):
        await store.set("k", {"a": 1}, ttl=10)
        clock.advance(9)
        assert await store.get("k") is not None
        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_single_winner(self, store):
        await store.set("k", {"a": 1})

        results = await asyncio.gather(store.delete("k"), store.delete("k"))

        assert sorted(results) == [False, True]

    @pytest.mark.asyncio
    async def test_delete_expired_is_not_a_win(self, store, clock):
        await store.set("k", {"a": 1}, ttl=1)
        clock.advance(2)

        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_update_only_existing(self, store, clock):
        """Update should never recreate a deleted or expired key."""
        assert await store.update("k", {"a": 1}) is False
        assert await store.get("k") is None

        await store.set("k", {"a": 1}, ttl=5)
        assert await store.update("k", {"a": 2}, ttl=5) is True
        assert await store.get("k") == {"a": 2}

        clock.advance(6)
        assert await store.update("k", {"a": 3}) is False
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_scan_and_count(self, store, clock):
        await store.set("csrf:a", {"n": 1})
        await store.set("csrf:b", {"n": 2}, ttl=5)
        await store.set("session:c", {"n": 3})
        clock.advance(6)

        assert await store.scan("csrf:") == [("csrf:a", {"n": 1})]
        assert await store.count("session:") == 1


class TestRedisStateStore:
    """Tests for the Redis-backed state store."""

    @pytest.mark.asyncio
    async def test_round_trip_namespaced(self):
        from taskaru_core.store import RedisStateStore

        redis = FakeRedis()
        store = RedisStateStore(redis, namespace="test")

        await store.set("csrf:a", {"token": "t"}, ttl=10.2)

        assert json.loads(redis.data["test:csrf:a"]) == {"token": "t"}
        assert redis.expiry["test:csrf:a"] == 11
        assert await store.get("csrf:a") == {"token": "t"}
        assert await store.scan("csrf:") == [("csrf:a", {"token": "t"})]

    @pytest.mark.asyncio
    async def test_delete_reports_winner(self):
        from taskaru_core.store import RedisStateStore

        store = RedisStateStore(FakeRedis())
        await store.set("k", {"a": 1})

        assert await store.delete("k") is True
        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_update_uses_xx(self):
        from taskaru_core.store import RedisStateStore

        redis = FakeRedis()
        store = RedisStateStore(redis, namespace="test")

        assert await store.update("session:a", {"n": 1}, ttl=30) is False
        assert "test:session:a" not in redis.data

        await store.set("session:a", {"n": 1})
        assert await store.update("session:a", {"n": 2}, ttl=30) is True
        assert json.loads(redis.data["test:session:a"]) == {"n": 2}
        assert redis.expiry["test:session:a"] == 30

    @pytest.mark.asyncio
    async def test_close(self):
        from taskaru_core.store import RedisStateStore

        redis = FakeRedis()
        await RedisStateStore(redis).close()

        assert redis.closed is True

    def test_factory_defaults_to_memory(self, settings):
        from taskaru_core.store import InMemoryStateStore, build_state_store

        assert isinstance(build_state_store(settings), InMemoryStateStore)


class TestAuditChain:
    """Tests for hash-chained audit events."""

    def test_chain_links(self, audit):
        from taskaru_core.audit import verify_chain_integrity

        first = audit.record("csrf.issued", subject="s1")
        second = audit.record("csrf.rejected", outcome="failure", reason="expired")

        assert first.previous_hash is None
        assert second.previous_hash == first.hash
        assert verify_chain_integrity(audit.events()) == (True, None)

    def test_tamper_detected(self, audit):
        """Editing an earlier event should break the chain at that event."""
        from taskaru_core.audit import verify_chain_integrity

        audit.record("otp.sent")
        audit.record("otp.verified")
        audit.record("session.created")
        events = audit.events()
        events[1].outcome = "failure"

        assert verify_chain_integrity(events) == (False, 1)

    def test_filter_and_flush(self, audit):
        from taskaru_core.audit import AuditEventType

        audit.record(AuditEventType.OTP_SENT)
        audit.record(AuditEventType.CSRF_ISSUED)

        assert len(audit.events(AuditEventType.OTP_SENT)) == 1
        assert len(audit.flush()) == 2
        assert audit.events() == []

    def test_resume_chain(self):
        from taskaru_core.audit import AuditLogger

        audit = AuditLogger("svc")
        audit.set_previous_hash("abc")

        assert audit.record("otp.sent").previous_hash == "abc"


class TestSettings:
    """Tests for environment-driven settings."""

    def test_from_env(self, monkeypatch):
        from taskaru_core.config import SecuritySettings

        monkeypatch.delenv("CSRF_SECRET", raising=False)
        monkeypatch.setenv("TASKARU_ENV", "Production")
        monkeypatch.setenv("JWT_SECRET", "j" * 32)
        monkeypatch.setenv("OTP_PHONE_LIMIT_PER_HOUR", "5")
        monkeypatch.setenv("OTP_ACCEPTED_PREFIXES", "080, 090")
        monkeypatch.setenv("TRUSTED_PROXIES", "10.0.0.0/8, 127.0.0.1")

        settings = SecuritySettings.from_env()

        assert settings.is_production is True
        assert settings.jwt_secret == "j" * 32
        assert settings.csrf_secret is None
        assert settings.otp_phone_limit_per_hour == 5
        assert settings.otp_accepted_prefixes == ("080", "090")
        assert settings.trusted_proxies == ("10.0.0.0/8", "127.0.0.1")

    def test_bad_integer(self, monkeypatch):
        from taskaru_core.config import SecuritySettings
        from taskaru_core.errors import ConfigurationError

        monkeypatch.setenv("OTP_IP_LIMIT_PER_HOUR", "lots")

        with pytest.raises(ConfigurationError):
            SecuritySettings.from_env()

    def test_require(self, settings):
        from taskaru_core.errors import ConfigurationError

        assert settings.require("jwt_secret")
        with pytest.raises(ConfigurationError):
            settings.require("twilio_auth_token")

    def test_production_requires_secrets(self):
        """Production startup should fail fast when a secret is missing."""
        from taskaru_core.config import SecuritySettings
        from taskaru_core.errors import ConfigurationError

        settings = SecuritySettings(environment="production", jwt_secret="j" * 32)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate()
        assert "CSRF_SECRET" in str(exc_info.value)

    def test_production_short_secret(self):
        from taskaru_core.config import SecuritySettings
        from taskaru_core.errors import ConfigurationError

        settings = SecuritySettings(
            environment="production",
            jwt_secret="short",
            csrf_secret="c" * 32,
            twilio_account_sid="AC1",
            twilio_auth_token="t",
            twilio_phone_number="+15005550006",
        )

        with pytest.raises(ConfigurationError):
            settings.validate()

    def test_bad_ip_binding(self, settings):
        from taskaru_core.errors import ConfigurationError

        settings.token_ip_binding = "loose"

        with pytest.raises(ConfigurationError):
            settings.validate()

    def test_describe_hides_values(self, settings):
        described = settings.describe()

        assert described["jwt_secret"] is True
        assert described["twilio_auth_token"] is False
        assert settings.jwt_secret not in str(described)


class TestLogging:
    """Tests for log processors."""

    def test_redacts_sensitive_keys(self):
        from taskaru_core.logging_config import redact_sensitive_fields

        event = redact_sensitive_fields(None, "info", {
            "event": "login",
            "password": "hunter2",
            "csrf_token": "abc",
            "otp_code": "123456",
            "user_id": "u1",
        })

        assert event["password"] == "***REDACTED***"
        assert event["csrf_token"] == "***REDACTED***"
        assert event["otp_code"] == "***REDACTED***"
        assert event["user_id"] == "u1"
        assert event["event"] == "login"

    def test_service_name(self):
        from taskaru_core.logging_config import add_service_name

        event = add_service_name("taskaru-core")(None, "info", {"event": "x"})

        assert event["service"] == "taskaru-core"

    @pytest.mark.parametrize("phone,masked", [
        ("09012345678", "********678"),
        ("+81 90-1234-5678", "*********678"),
        ("", "[MASKED]"),
        ("12", "[MASKED]"),
    ])
    def test_mask_phone(self, phone, masked):
        from taskaru_core.logging_config import mask_phone

        assert mask_phone(phone) == masked


class TestPeriodicTask:
    """Tests for the background sweep runner."""

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        from taskaru_core.background import PeriodicTask

        calls = []

        async def tick():
            calls.append(1)

        task = PeriodicTask("tick", tick, interval=0.01)
        task.start()
        await asyncio.sleep(0.05)
        await task.stop()

        assert calls
        assert task.running is False

    @pytest.mark.asyncio
    async def test_survives_failures(self):
        from taskaru_core.background import PeriodicTask

        calls = []

        async def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        task = PeriodicTask("flaky", flaky, interval=0.01)
        task.start()
        await asyncio.sleep(0.05)

        assert len(calls) > 1
        assert task.running is True
        await task.stop()
