"""
Security Components
===================
Wires the registries and services together once at startup.

Backends are chosen here, not at call time: Supabase when configured,
otherwise in-memory; Twilio when configured, otherwise (outside
production) an in-memory outbox.
"""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import structlog

from ..admin import (
    AdminAuthenticator,
    AdminDirectory,
    InMemoryAdminDirectory,
    SupabaseAdminDirectory,
)
from ..audit import AuditLogger
from ..config import SecuritySettings, get_settings
from ..csrf import SWEEP_INTERVAL as CSRF_SWEEP_INTERVAL, CSRFTokenRegistry
from ..errors import ConfigurationError
from ..otp import (
    InMemoryOTPStore,
    OTPConfig,
    OTPStore,
    OTPVerificationService,
    SupabaseOTPStore,
)
from ..rate_limit import OTPSendLimiter, OTPSendPolicy
from ..session import SWEEP_INTERVAL as SESSION_SWEEP_INTERVAL, SessionManager
from ..sms import InMemorySMSGateway, SMSGateway, TwilioGateway
from ..store import StateStore, build_state_store
from ..supabase import SupabaseRestClient
from ..tokens import IPBindingMode, SecureTokenManager, TokenCodec

logger = structlog.get_logger(__name__)

SERVICE_NAME = "taskaru-core"
OTP_PRUNE_INTERVAL = 10 * 60


@dataclass
class SecurityComponents:
    settings: SecuritySettings
    store: StateStore
    audit: AuditLogger
    csrf: CSRFTokenRegistry
    sessions: SessionManager
    tokens: SecureTokenManager
    otp: OTPVerificationService
    admin: AdminAuthenticator
    gateway: SMSGateway
    supabase: Optional[SupabaseRestClient] = None

    async def aclose(self) -> None:
        await self.gateway.close()
        if self.supabase is not None:
            await self.supabase.aclose()
        await self.store.close()


def _build_gateway(settings: SecuritySettings) -> SMSGateway:
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number:
        return TwilioGateway.from_settings(settings)
    if settings.is_production:
        raise ConfigurationError("Twilio credentials are not configured")
    logger.warning("Twilio not configured; SMS messages are kept in memory")
    return InMemorySMSGateway()


def build_components(
    settings: Optional[SecuritySettings] = None,
    store: Optional[StateStore] = None,
    otp_store: Optional[OTPStore] = None,
    gateway: Optional[SMSGateway] = None,
    admin_directory: Optional[AdminDirectory] = None,
    clock: Callable[[], float] = time.time,
) -> SecurityComponents:
    """
    Build every security component from settings.

    Explicit arguments replace the backend that would otherwise be chosen.

    Raises:
        ConfigurationError: Settings fail validation
    """
    settings = settings or get_settings()
    settings.validate()

    store = store or build_state_store(settings)
    audit = AuditLogger(SERVICE_NAME)

    supabase = None
    if settings.supabase_url and settings.supabase_service_role_key and (
        otp_store is None or admin_directory is None
    ):
        supabase = SupabaseRestClient.from_settings(settings)

    if otp_store is None:
        otp_store = SupabaseOTPStore(supabase) if supabase else InMemoryOTPStore()
    if admin_directory is None:
        admin_directory = SupabaseAdminDirectory(supabase) if supabase else InMemoryAdminDirectory()
    gateway = gateway or _build_gateway(settings)

    tokens = SecureTokenManager(
        TokenCodec(settings=settings),
        store,
        audit=audit,
        clock=clock,
        ip_binding=IPBindingMode(settings.token_ip_binding),
    )
    otp = OTPVerificationService(
        otp_store,
        gateway,
        limiter=OTPSendLimiter(otp_store, OTPSendPolicy.from_settings(settings), clock=clock),
        config=OTPConfig(send_timeout_seconds=settings.sms_timeout_seconds),
        audit=audit,
        clock=clock,
        accepted_prefixes=settings.otp_accepted_prefixes,
    )

    components = SecurityComponents(
        settings=settings,
        store=store,
        audit=audit,
        csrf=CSRFTokenRegistry(store, settings=settings, audit=audit, clock=clock),
        sessions=SessionManager(store, settings=settings, audit=audit, clock=clock),
        tokens=tokens,
        otp=otp,
        admin=AdminAuthenticator(admin_directory, tokens, audit=audit),
        gateway=gateway,
        supabase=supabase,
    )
    logger.info(
        "Security components built",
        environment=settings.environment,
        store=type(store).__name__,
        otp_store=type(otp_store).__name__,
        gateway=gateway.name,
    )
    return components


def sweep_jobs(components: SecurityComponents) -> List[tuple]:
    """(name, coroutine function, interval) for the background sweeps."""
    jobs = [
        ("csrf-sweep", components.csrf.sweep_expired, CSRF_SWEEP_INTERVAL),
        ("session-sweep", components.sessions.sweep_expired, SESSION_SWEEP_INTERVAL),
        ("token-history-cleanup", components.tokens.cleanup, SESSION_SWEEP_INTERVAL),
    ]
    if isinstance(components.otp.store, InMemoryOTPStore):
        jobs.append(("otp-history-prune", components.otp.prune_history, OTP_PRUNE_INTERVAL))
    return jobs
