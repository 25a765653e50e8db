"""
Session Manager Tests
=====================
"""

import asyncio

import pytest


def _sessions(store, settings, clock, audit=None):
    from taskaru_core.session import SessionManager

    return SessionManager(store, settings=settings, audit=audit, clock=clock)


class TestSessionLifecycle:
    """Tests for creating, validating and destroying sessions."""

    @pytest.mark.asyncio
    async def test_create_session(self, store, settings, clock, audit):
        """Should return distinct opaque session and CSRF tokens."""
        sessions = _sessions(store, settings, clock, audit)

        credentials = await sessions.create_session(phone_number="09012345678")
        record = await sessions.validate_session(credentials.session_token)

        assert credentials.session_token != credentials.csrf_token
        assert len(credentials.csrf_token) == 64
        assert record.authenticated is True
        assert record.phone_number == "09012345678"
        assert audit.events("session.created")

    @pytest.mark.asyncio
    async def test_unknown_or_missing_token(self, store, settings, clock):
        sessions = _sessions(store, settings, clock)

        assert await sessions.validate_session(None) is None
        assert await sessions.validate_session("") is None
        assert await sessions.validate_session("unknown") is None

    @pytest.mark.asyncio
    async def test_sliding_expiry(self, store, settings, clock):
        """Each validation should reset the idle timer."""
        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session()

        for _ in range(3):
            clock.advance(25 * 60)
            assert await sessions.validate_session(credentials.session_token) is not None

    @pytest.mark.asyncio
    async def test_idle_expiry(self, store, settings, clock, audit):
        """An idle session should expire and be removed."""
        sessions = _sessions(store, settings, clock, audit)
        credentials = await sessions.create_session()

        clock.advance(30 * 60 + 1)

        assert await sessions.validate_session(credentials.session_token) is None
        assert audit.events("session.expired")
        assert (await sessions.stats())["total"] == 0

    @pytest.mark.asyncio
    async def test_destroy_session(self, store, settings, clock, audit):
        sessions = _sessions(store, settings, clock, audit)
        credentials = await sessions.create_session()

        assert await sessions.destroy_session(credentials.session_token) is True
        assert await sessions.destroy_session(credentials.session_token) is False
        assert await sessions.validate_session(credentials.session_token) is None
        assert len(audit.events("session.destroyed")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["validate", "update"])
    async def test_logout_sticks_under_concurrency(self, settings, clock, operation):
        """A destroy landing mid-validation should not bring the session back."""
        from taskaru_core.store import InMemoryStateStore

        class SlowReadStore(InMemoryStateStore):
            async def get(self, key):
                value = await super().get(key)
                await asyncio.sleep(0)
                return value

        sessions = _sessions(SlowReadStore(clock=clock), settings, clock)
        token = (await sessions.create_session()).session_token

        if operation == "validate":
            touched = sessions.validate_session(token)
        else:
            touched = sessions.update_session(token, user_id="user-7")
        result, destroyed = await asyncio.gather(touched, sessions.destroy_session(token))

        assert destroyed is True
        assert not result
        assert await sessions.validate_session(token) is None

    @pytest.mark.asyncio
    async def test_update_session(self, store, settings, clock):
        """Should update allowed fields only."""
        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session()

        assert await sessions.update_session(credentials.session_token, user_id="user-7") is True
        record = await sessions.validate_session(credentials.session_token)
        assert record.user_id == "user-7"

        with pytest.raises(ValueError):
            await sessions.update_session(credentials.session_token, csrf_token="x")
        assert await sessions.update_session("unknown", user_id="user-7") is False

    @pytest.mark.asyncio
    async def test_sweep_and_stats(self, store, settings, clock):
        sessions = _sessions(store, settings, clock)
        await sessions.create_session()
        clock.advance(20 * 60)
        await sessions.create_session()
        clock.advance(11 * 60)

        assert await sessions.stats() == {"total": 2, "active": 1}
        assert await sessions.sweep_expired() == 1
        assert await sessions.stats() == {"total": 1, "active": 1}


class TestAuthorization:
    """Tests for the auth gate."""

    @pytest.mark.asyncio
    async def test_authorize(self, store, settings, clock):
        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session(user_id="user-1")

        record = await sessions.authorize(credentials.session_token, credentials.csrf_token)

        assert record.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_authorize_without_session(self, store, settings, clock):
        """Should raise Unauthenticated when the session is missing."""
        from taskaru_core.errors import Unauthenticated

        sessions = _sessions(store, settings, clock)

        with pytest.raises(Unauthenticated):
            await sessions.authorize(None, "anything")

    @pytest.mark.asyncio
    async def test_authorize_unauthenticated_session(self, store, settings, clock):
        """A session marked unauthenticated should not pass the gate."""
        from taskaru_core.errors import Unauthenticated

        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session()
        await sessions.update_session(credentials.session_token, authenticated=False)

        with pytest.raises(Unauthenticated):
            await sessions.authorize(credentials.session_token, credentials.csrf_token)

    @pytest.mark.asyncio
    async def test_authorize_bad_csrf(self, store, settings, clock):
        """Should raise CSRFInvalid for a wrong or missing CSRF token."""
        from taskaru_core.errors import CSRFInvalid

        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session()

        with pytest.raises(CSRFInvalid):
            await sessions.authorize(credentials.session_token, "0" * 64)
        with pytest.raises(CSRFInvalid):
            await sessions.authorize(credentials.session_token, None)

    @pytest.mark.asyncio
    async def test_require_auth(self, store, settings, clock):
        """The wrapper should pass the session to the handler."""
        from taskaru_core.errors import Unauthenticated

        sessions = _sessions(store, settings, clock)
        credentials = await sessions.create_session(user_id="user-1")

        @sessions.require_auth
        async def whoami(session, suffix):
            return session.user_id + suffix

        result = await whoami(
            "!",
            session_token=credentials.session_token,
            csrf_token=credentials.csrf_token,
        )
        assert result == "user-1!"
        assert whoami.__name__ == "whoami"

        with pytest.raises(Unauthenticated):
            await whoami("!", session_token="bogus", csrf_token=credentials.csrf_token)
