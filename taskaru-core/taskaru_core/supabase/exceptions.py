from typing import Optional, Any


class SupabaseError(Exception):
    """Base exception for all managed database errors."""
    def __init__(self, message: str, table: str = "unknown", status_code: Optional[int] = None, details: Any = None):
        self.message = message
        self.table = table
        self.status_code = status_code
        self.details = details
        super().__init__(f"[{table}] {message} (Status: {status_code})")


class SupabaseUnavailableError(SupabaseError):
    """Raised when the database API is unreachable or returns 5xx."""
    pass


class SupabaseTimeoutError(SupabaseUnavailableError):
    """Raised specifically on timeouts."""
    pass


class SupabaseAuthError(SupabaseError):
    """Raised when the service role key is rejected (401/403)."""
    pass
