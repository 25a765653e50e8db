"""
Logging Configuration
=====================
Structured logging setup for services embedding the security core.

Usage:
    from taskaru_core.logging_config import configure_logging

    configure_logging(service_name="taskaru-api", level="INFO", json_output=True)
"""

import logging
import re
import sys
from typing import List

import structlog
from structlog.types import EventDict, Processor

# Substrings of event keys whose values must never reach the log stream
REDACTED_KEY_PARTS = ("password", "token", "secret", "otp", "code", "authorization", "cookie")

# Keys that structlog itself owns
PROTECTED_KEYS = {"event", "level", "logger", "timestamp", "exception", "status_code"}


def mask_phone(phone: str) -> str:
    """Mask all but the last three digits of a phone number."""
    if not phone:
        return "[MASKED]"
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 4:
        return "[MASKED]"
    return "*" * (len(digits) - 3) + digits[-3:]


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace values of sensitive keys with a placeholder."""
    for key in list(event_dict.keys()):
        if key in PROTECTED_KEYS:
            continue
        lowered = key.lower()
        if any(part in lowered for part in REDACTED_KEY_PARTS):
            event_dict[key] = "***REDACTED***"
    return event_dict


def add_service_name(service_name: str) -> Processor:
    def processor(logger, method_name, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict
    return processor


def configure_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and stdlib logging for a service.

    Args:
        service_name: Name attached to every event
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console renderer otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_service_name(service_name),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info("Logging configured", level=level.upper())
