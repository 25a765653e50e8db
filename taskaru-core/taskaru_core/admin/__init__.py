"""
Admin panel login.
"""

from .auth import AdminAuthenticator, AdminLoginFailure, AdminLoginResult
from .directory import (
    AdminAccount,
    AdminDirectory,
    InMemoryAdminDirectory,
    SupabaseAdminDirectory,
)

__all__ = [
    "AdminAuthenticator",
    "AdminLoginFailure",
    "AdminLoginResult",
    "AdminAccount",
    "AdminDirectory",
    "InMemoryAdminDirectory",
    "SupabaseAdminDirectory",
]
