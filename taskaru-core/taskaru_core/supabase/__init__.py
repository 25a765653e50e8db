from .client import SupabaseRestClient
from .exceptions import (
    SupabaseError,
    SupabaseUnavailableError,
    SupabaseTimeoutError,
    SupabaseAuthError,
)

__all__ = [
    "SupabaseRestClient",
    "SupabaseError",
    "SupabaseUnavailableError",
    "SupabaseTimeoutError",
    "SupabaseAuthError",
]
