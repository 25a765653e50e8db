"""
Security Configuration
======================
Environment-driven settings for the security core.

No secret has a default value. Code that needs a secret calls
``settings.require(...)`` so a missing value fails closed with
ConfigurationError instead of falling back to a weak default.
"""

import ipaddress
import os
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Optional, Tuple

from .errors import ConfigurationError

PRODUCTION_ENVIRONMENTS = ("production", "prod")

# Secrets that must be present before a production process starts serving
PRODUCTION_REQUIRED = (
    "jwt_secret",
    "csrf_secret",
    "twilio_account_sid",
    "twilio_auth_token",
    "twilio_phone_number",
)

MIN_SECRET_LENGTH = 32


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value or None


@dataclass
class SecuritySettings:
    """Settings for the security core."""
    environment: str = "development"

    # Secrets
    jwt_secret: Optional[str] = None
    csrf_secret: Optional[str] = None

    # SMS gateway
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    # Managed database
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # Shared state store (in-memory when unset)
    redis_url: Optional[str] = None

    # OTP send policy
    otp_phone_limit_per_hour: int = 3
    otp_ip_limit_per_hour: int = 10
    otp_global_limit_per_hour: int = 100
    otp_fanout_max_phones: int = 5
    otp_fanout_window_seconds: int = 600
    otp_accepted_prefixes: Tuple[str, ...] = ("070", "080", "090")

    # Token binding: "subnet", "exact" or "none"
    token_ip_binding: str = "subnet"

    # Proxies (IPs or CIDRs) whose X-Forwarded-For / X-Real-IP headers are honoured
    trusted_proxies: Tuple[str, ...] = ()

    # External call timeouts (seconds)
    sms_timeout_seconds: float = 10.0
    http_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SecuritySettings":
        """Build settings from environment variables."""
        prefixes = _env_str("OTP_ACCEPTED_PREFIXES")
        proxies = _env_str("TRUSTED_PROXIES") or ""
        return cls(
            environment=os.environ.get("TASKARU_ENV", "development").lower(),
            jwt_secret=_env_str("JWT_SECRET"),
            csrf_secret=_env_str("CSRF_SECRET"),
            twilio_account_sid=_env_str("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=_env_str("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=_env_str("TWILIO_PHONE_NUMBER"),
            supabase_url=_env_str("SUPABASE_URL"),
            supabase_service_role_key=_env_str("SUPABASE_SERVICE_ROLE_KEY"),
            redis_url=_env_str("REDIS_URL"),
            otp_phone_limit_per_hour=_env_int("OTP_PHONE_LIMIT_PER_HOUR", 3),
            otp_ip_limit_per_hour=_env_int("OTP_IP_LIMIT_PER_HOUR", 10),
            otp_global_limit_per_hour=_env_int("OTP_GLOBAL_LIMIT_PER_HOUR", 100),
            otp_fanout_max_phones=_env_int("OTP_FANOUT_MAX_PHONES", 5),
            otp_fanout_window_seconds=_env_int("OTP_FANOUT_WINDOW_SECONDS", 600),
            otp_accepted_prefixes=(
                tuple(p.strip() for p in prefixes.split(",") if p.strip())
                if prefixes else ("070", "080", "090")
            ),
            token_ip_binding=os.environ.get("TOKEN_IP_BINDING", "subnet").lower(),
            trusted_proxies=tuple(p.strip() for p in proxies.split(",") if p.strip()),
            sms_timeout_seconds=float(os.environ.get("SMS_TIMEOUT_SECONDS", "10")),
            http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10")),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment in PRODUCTION_ENVIRONMENTS

    def require(self, name: str) -> str:
        """
        Return a required setting or fail closed.

        Args:
            name: Attribute name (e.g. "jwt_secret")

        Raises:
            ConfigurationError: If the value is missing or empty
        """
        value = getattr(self, name, None)
        if not value:
            raise ConfigurationError(f"{name.upper()} is not configured")
        return value

    def validate(self) -> None:
        """
        Validate settings at startup.

        In production every secret in PRODUCTION_REQUIRED must be set, and
        signing secrets must be at least MIN_SECRET_LENGTH characters.
        """
        if self.token_ip_binding not in ("subnet", "exact", "none"):
            raise ConfigurationError(
                f"TOKEN_IP_BINDING must be subnet, exact or none, got {self.token_ip_binding!r}"
            )

        for proxy in self.trusted_proxies:
            try:
                ipaddress.ip_network(proxy, strict=False)
            except ValueError:
                raise ConfigurationError(f"TRUSTED_PROXIES entry is not an IP or network: {proxy!r}")

        if not self.is_production:
            return

        missing = [name.upper() for name in PRODUCTION_REQUIRED if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required production settings: {', '.join(missing)}"
            )

        for name in ("jwt_secret", "csrf_secret"):
            if len(getattr(self, name)) < MIN_SECRET_LENGTH:
                raise ConfigurationError(
                    f"{name.upper()} must be at least {MIN_SECRET_LENGTH} characters in production"
                )

    def describe(self) -> dict:
        """Presence map of every setting, safe to log."""
        return {f.name: bool(getattr(self, f.name)) for f in fields(self)}


@lru_cache(maxsize=1)
def get_settings() -> SecuritySettings:
    """Get cached settings loaded from the environment."""
    return SecuritySettings.from_env()
