"""
OTP Tests
=========
Tests for phone handling, code generation, send limits and the
send/verify service.
"""

import asyncio
import re

import pytest

PHONE = "09012345678"
E164 = "+819012345678"
IP = "203.0.113.5"


def _code_from(gateway, to=E164):
    message = gateway.last_message_to(to)
    return re.search(r"認証コード: (\d{6})", message.body).group(1)


def _service(clock, audit=None, gateway=None, policy=None, **kwargs):
    from taskaru_core.otp import InMemoryOTPStore, OTPVerificationService
    from taskaru_core.rate_limit import OTPSendLimiter
    from taskaru_core.sms import InMemorySMSGateway

    store = InMemoryOTPStore()
    gateway = gateway or InMemorySMSGateway()
    limiter = OTPSendLimiter(store, policy=policy, clock=clock)
    service = OTPVerificationService(
        store, gateway, limiter=limiter, audit=audit, clock=clock, **kwargs
    )
    return service, store, gateway


def _wrong(code):
    return "000000" if code != "000000" else "111111"


class TestPhone:
    """Tests for phone normalization and validation."""

    @pytest.mark.parametrize("raw", [
        "090-1234-5678",
        "090 1234 5678",
        "０９０１２３４５６７８",
        "+81 90-1234-5678",
        "819012345678",
    ])
    def test_normalize(self, raw):
        """Should reduce common input forms to the domestic digit form."""
        from taskaru_core.otp import normalize_phone

        assert normalize_phone(raw) == PHONE

    def test_normalize_non_string(self):
        from taskaru_core.otp import normalize_phone

        assert normalize_phone(None) == ""

    @pytest.mark.parametrize("phone,valid", [
        ("09012345678", True),
        ("08012345678", True),
        ("07012345678", True),
        ("06012345678", False),
        ("0901234567", False),
        ("090123456789", False),
        ("", False),
    ])
    def test_validate(self, phone, valid):
        from taskaru_core.otp import validate_phone

        assert validate_phone(phone) is valid

    def test_to_e164(self):
        from taskaru_core.otp import to_e164

        assert to_e164(PHONE) == E164

    def test_mask_phone(self):
        """Masked numbers should keep only the last three digits."""
        from taskaru_core.logging_config import mask_phone

        masked = mask_phone(PHONE)

        assert masked == "********678"
        assert "12345" not in masked


class TestGenerator:
    """Tests for code generation."""

    def test_codes_are_six_digits(self):
        from taskaru_core.otp import generate_otp

        codes = {generate_otp() for _ in range(200)}

        assert all(len(c) == 6 and c.isdigit() for c in codes)
        assert len(codes) > 150

    @pytest.mark.parametrize("code,ok", [
        ("123456", True),
        ("012345", True),
        ("12345", False),
        ("1234567", False),
        ("12a456", False),
        ("１２３４５６", False),
        (None, False),
    ])
    def test_well_formed(self, code, ok):
        from taskaru_core.otp import is_well_formed_code

        assert is_well_formed_code(code) is ok


class TestInMemoryOTPStore:
    """Tests for the process-local OTP store."""

    @pytest.mark.asyncio
    async def test_insert_replaces_prior(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))
        await store.insert(OTPRecord(PHONE, "222222", 10.0, 310.0))

        active = await store.find_active(PHONE, 20.0)

        assert active.code == "222222"
        assert await store.count_since(0.0, phone_number=PHONE) == 2

    @pytest.mark.asyncio
    async def test_mark_verified_once(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))

        assert await store.mark_verified(PHONE, 5.0) is True
        assert await store.mark_verified(PHONE, 6.0) is False
        assert await store.find_active(PHONE, 7.0) is None

    @pytest.mark.asyncio
    async def test_expired_not_active(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))

        assert await store.find_active(PHONE, 300.0) is not None
        assert await store.find_active(PHONE, 300.5) is None

    @pytest.mark.asyncio
    async def test_prune(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))
        await store.insert(OTPRecord("08012345678", "111111", 100.0, 400.0))

        assert await store.prune(50.0) == 1
        assert await store.count_since(0.0) == 1

    @pytest.mark.asyncio
    async def test_prune_drops_finished_records(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))
        await store.insert(OTPRecord("08012345678", "222222", 0.0, 900.0))
        await store.insert(OTPRecord("07012345678", "333333", 0.0, 900.0))
        await store.mark_verified("07012345678", 10.0)

        await store.prune(0.0, now=600.0)

        assert store.get(PHONE) is None
        assert store.get("07012345678") is None
        assert store.get("08012345678").code == "222222"

    @pytest.mark.asyncio
    async def test_consume_attempt_stops_at_limit(self):
        from taskaru_core.otp import InMemoryOTPStore, OTPRecord

        store = InMemoryOTPStore()
        await store.insert(OTPRecord(PHONE, "111111", 0.0, 300.0))

        claimed = [await store.consume_attempt(PHONE, 3, 1.0) for _ in range(4)]

        assert claimed == [1, 2, 3, None]
        assert store.get(PHONE).attempts == 3
        assert await store.consume_attempt("08012345678", 3, 1.0) is None
        assert await store.consume_attempt(PHONE, 5, 301.0) is None


class TestOTPSendLimiter:
    """Tests for the layered send limits."""

    @pytest.mark.asyncio
    async def test_phone_limit(self, clock):
        """The fourth send to one number within an hour should be blocked."""
        from taskaru_core.otp import OTPStatus

        service, _, _ = _service(clock)

        statuses = []
        for _ in range(4):
            statuses.append((await service.send_otp(PHONE, IP)).status)
            clock.advance(60)

        assert statuses[:3] == [OTPStatus.SENT] * 3
        assert statuses[3] == OTPStatus.RATE_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_phone_limit_window_slides(self, clock):
        """Sends older than an hour should no longer count."""
        from taskaru_core.otp import OTPStatus

        service, _, _ = _service(clock)
        for _ in range(3):
            await service.send_otp(PHONE, IP)
        clock.advance(3601)

        assert (await service.send_otp(PHONE, IP)).status == OTPStatus.SENT

    @pytest.mark.asyncio
    async def test_ip_limit(self, clock):
        """An IP should be capped across different numbers."""
        from taskaru_core.otp import OTPStatus
        from taskaru_core.rate_limit import OTPSendPolicy

        service, _, _ = _service(
            clock, policy=OTPSendPolicy(ip_per_hour=2, fanout_max_phones=100)
        )

        await service.send_otp("09011111111", IP)
        await service.send_otp("09022222222", IP)
        result = await service.send_otp("09033333333", IP)

        assert result.status == OTPStatus.RATE_LIMIT_EXCEEDED
        assert result.limit_layer == "ip"
        assert result.retry_after == 3600

    @pytest.mark.asyncio
    async def test_ip_limit_skipped_without_ip(self, clock):
        from taskaru_core.otp import OTPStatus
        from taskaru_core.rate_limit import OTPSendPolicy

        service, _, _ = _service(clock, policy=OTPSendPolicy(ip_per_hour=1))

        await service.send_otp("09011111111")

        assert (await service.send_otp("09022222222")).status == OTPStatus.SENT

    @pytest.mark.asyncio
    async def test_global_limit(self, clock):
        from taskaru_core.otp import OTPStatus
        from taskaru_core.rate_limit import OTPSendPolicy

        service, _, _ = _service(clock, policy=OTPSendPolicy(global_per_hour=2))

        await service.send_otp("09011111111", "198.51.100.1")
        await service.send_otp("09022222222", "198.51.100.2")
        result = await service.send_otp("09033333333", "198.51.100.3")

        assert result.status == OTPStatus.RATE_LIMIT_EXCEEDED
        assert result.limit_layer == "global"

    @pytest.mark.asyncio
    async def test_fanout(self, clock):
        """Once one IP has targeted more numbers than allowed, further sends are blocked."""
        from taskaru_core.otp import OTPStatus
        from taskaru_core.rate_limit import OTPSendPolicy

        service, _, _ = _service(
            clock, policy=OTPSendPolicy(ip_per_hour=100, fanout_max_phones=2)
        )

        for phone in ("09011111111", "09022222222", "09033333333"):
            assert (await service.send_otp(phone, IP)).status == OTPStatus.SENT
        result = await service.send_otp("09044444444", IP)

        assert result.status == OTPStatus.RATE_LIMIT_EXCEEDED
        assert result.limit_layer == "fanout"
        assert result.retry_after == 600

    @pytest.mark.asyncio
    async def test_blocked_send_is_audited(self, clock, audit):
        service, _, gateway = _service(clock, audit=audit)
        for _ in range(4):
            await service.send_otp(PHONE, IP)

        assert len(gateway.outbox) == 3
        assert audit.events("otp.send_blocked")[-1].reason == "phone"


class TestOTPSend:
    """Tests for issuing codes."""

    @pytest.mark.asyncio
    async def test_send(self, clock, audit):
        """Should store a record and text the code to the E.164 number."""
        from taskaru_core.otp import OTPStatus

        service, store, gateway = _service(clock, audit=audit)

        result = await service.send_otp("090-1234-5678", IP)

        assert result.status == OTPStatus.SENT
        assert result.success
        assert result.expires_at == clock() + 300
        assert store.get(PHONE).code == _code_from(gateway)
        assert "タスカル" in gateway.outbox[0].body
        assert audit.events("otp.sent")

    @pytest.mark.asyncio
    async def test_invalid_phone(self, clock):
        from taskaru_core.otp import OTPStatus

        service, store, gateway = _service(clock)

        result = await service.send_otp("03-1234-5678", IP)

        assert result.status == OTPStatus.INVALID_PHONE_FORMAT
        assert gateway.outbox == []
        assert await store.count_since(0.0) == 0

    @pytest.mark.asyncio
    async def test_custom_prefixes(self, clock):
        from taskaru_core.otp import OTPStatus

        service, _, _ = _service(clock, accepted_prefixes=("090",))

        assert (await service.send_otp("08012345678", IP)).status == OTPStatus.INVALID_PHONE_FORMAT

    @pytest.mark.asyncio
    async def test_resend_replaces_code(self, clock):
        """Only the latest code should verify."""
        from taskaru_core.otp import OTPStatus

        service, store, gateway = _service(clock)
        await service.send_otp(PHONE, IP)
        first = _code_from(gateway)
        await service.send_otp(PHONE, IP)
        second = _code_from(gateway)

        if first != second:
            result = await service.verify_otp(PHONE, first)
            assert result.status == OTPStatus.CODE_MISMATCH
        assert (await service.verify_otp(PHONE, second)).status == OTPStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_record(self, clock, audit):
        """A gateway failure is reported but the stored code still verifies."""
        from taskaru_core.otp import OTPStatus
        from taskaru_core.sms import InMemorySMSGateway

        service, store, _ = _service(clock, audit=audit, gateway=InMemorySMSGateway(fail=True))

        result = await service.send_otp(PHONE, IP)

        assert result.status == OTPStatus.DELIVERY_FAILED
        record = store.get(PHONE)
        assert record is not None
        assert (await service.verify_otp(PHONE, record.code)).status == OTPStatus.VERIFIED
        event = audit.events("otp.delivery_failed")[-1]
        assert event.payload == {"record_retained": True}

    @pytest.mark.asyncio
    async def test_gateway_exception(self, clock):
        """An exception from the gateway should be reported as DELIVERY_FAILED."""
        from taskaru_core.otp import OTPStatus
        from taskaru_core.sms import SMSGateway

        class BrokenGateway(SMSGateway):
            name = "broken"

            async def send_sms(self, to, body):
                raise RuntimeError("connection reset")

        service, _, _ = _service(clock, gateway=BrokenGateway())

        assert (await service.send_otp(PHONE, IP)).status == OTPStatus.DELIVERY_FAILED

    @pytest.mark.asyncio
    async def test_gateway_timeout(self, clock):
        """A gateway slower than the send timeout should be reported as DELIVERY_FAILED."""
        from taskaru_core.otp import OTPConfig, OTPStatus
        from taskaru_core.sms import SMSGateway

        class SlowGateway(SMSGateway):
            name = "slow"

            async def send_sms(self, to, body):
                await asyncio.sleep(5)

        service, _, _ = _service(
            clock, gateway=SlowGateway(), config=OTPConfig(send_timeout_seconds=0.01)
        )

        assert (await service.send_otp(PHONE, IP)).status == OTPStatus.DELIVERY_FAILED


class TestOTPVerify:
    """Tests for verifying codes."""

    @pytest.mark.asyncio
    async def test_verify(self, clock, audit):
        from taskaru_core.otp import OTPStatus

        service, _, gateway = _service(clock, audit=audit)
        await service.send_otp(PHONE, IP)

        result = await service.verify_otp("090-1234-5678", _code_from(gateway))

        assert result.status == OTPStatus.VERIFIED
        assert result.phone_number == PHONE
        assert audit.events("otp.verified")

    @pytest.mark.asyncio
    async def test_single_use(self, clock):
        """A verified code cannot be redeemed again."""
        from taskaru_core.otp import OTPStatus

        service, _, gateway = _service(clock)
        await service.send_otp(PHONE, IP)
        code = _code_from(gateway)

        assert (await service.verify_otp(PHONE, code)).status == OTPStatus.VERIFIED
        assert (await service.verify_otp(PHONE, code)).status == OTPStatus.NOT_FOUND_OR_EXPIRED

    @pytest.mark.asyncio
    async def test_concurrent_verify_single_winner(self, clock):
        from taskaru_core.otp import OTPStatus

        service, _, gateway = _service(clock)
        await service.send_otp(PHONE, IP)
        code = _code_from(gateway)

        results = await asyncio.gather(
            service.verify_otp(PHONE, code),
            service.verify_otp(PHONE, code),
        )

        assert sum(1 for r in results if r.status == OTPStatus.VERIFIED) == 1

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, clock):
        """After five mismatches even the right code is refused."""
        from taskaru_core.otp import OTPStatus

        service, _, gateway = _service(clock)
        await service.send_otp(PHONE, IP)
        code = _code_from(gateway)

        remaining = []
        for _ in range(5):
            result = await service.verify_otp(PHONE, _wrong(code))
            assert result.status == OTPStatus.CODE_MISMATCH
            remaining.append(result.attempts_remaining)

        assert remaining == [4, 3, 2, 1, 0]
        result = await service.verify_otp(PHONE, code)
        assert result.status == OTPStatus.ATTEMPTS_EXHAUSTED
        assert result.attempts_remaining == 0

    @pytest.mark.asyncio
    async def test_prune_history(self, clock):
        """Pruning should keep the sends the limiter still counts."""
        service, store, _ = _service(clock)
        await service.send_otp(PHONE, IP)
        clock.advance(1800)
        await service.send_otp("08012345678", IP)
        clock.advance(1801)

        assert await service.prune_history() == 1
        assert await store.count_since(0.0) == 1
        assert store.get(PHONE) is None
        assert store.get("08012345678") is None

    @pytest.mark.asyncio
    async def test_concurrent_guesses_capped(self, clock):
        """A burst of wrong guesses should get no more than five comparisons."""
        from taskaru_core.otp import InMemoryOTPStore, OTPStatus, OTPVerificationService
        from taskaru_core.rate_limit import OTPSendLimiter
        from taskaru_core.sms import InMemorySMSGateway

        class SlowLookupStore(InMemoryOTPStore):
            async def find_active(self, phone_number, now):
                await asyncio.sleep(0)
                return await super().find_active(phone_number, now)

        store = SlowLookupStore()
        gateway = InMemorySMSGateway()
        service = OTPVerificationService(
            store, gateway, limiter=OTPSendLimiter(store, clock=clock), clock=clock
        )
        await service.send_otp(PHONE, IP)
        code = _code_from(gateway)

        results = await asyncio.gather(
            *[service.verify_otp(PHONE, _wrong(code)) for _ in range(19)],
            service.verify_otp(PHONE, code),
        )
        statuses = [r.status for r in results]

        assert statuses.count(OTPStatus.CODE_MISMATCH) + statuses.count(OTPStatus.VERIFIED) <= 5
        assert statuses[-1] == OTPStatus.ATTEMPTS_EXHAUSTED
        assert store.get(PHONE).attempts == 5

    @pytest.mark.asyncio
    async def test_expired(self, clock):
        """A code past its five minutes should not verify."""
        from taskaru_core.otp import OTPStatus

        service, _, gateway = _service(clock)
        await service.send_otp(PHONE, IP)
        clock.advance(301)

        result = await service.verify_otp(PHONE, _code_from(gateway))

        assert result.status == OTPStatus.NOT_FOUND_OR_EXPIRED

    @pytest.mark.asyncio
    async def test_no_code_sent(self, clock):
        from taskaru_core.otp import OTPStatus

        service, _, _ = _service(clock)

        assert (await service.verify_otp(PHONE, "123456")).status == OTPStatus.NOT_FOUND_OR_EXPIRED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["12345", "abcdef", "1234567", ""])
    async def test_malformed_code(self, clock, code):
        """Malformed codes should not consume attempts."""
        from taskaru_core.otp import OTPStatus

        service, store, _ = _service(clock)
        await service.send_otp(PHONE, IP)

        result = await service.verify_otp(PHONE, code)

        assert result.status == OTPStatus.MALFORMED_CODE
        assert store.get(PHONE).attempts == 0

    @pytest.mark.asyncio
    async def test_invalid_phone(self, clock):
        from taskaru_core.otp import OTPStatus

        service, _, _ = _service(clock)

        assert (await service.verify_otp("12345", "123456")).status == OTPStatus.INVALID_PHONE_FORMAT
