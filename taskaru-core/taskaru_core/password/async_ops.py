"""
Async Password Hashing
======================
Event-loop friendly wrappers; hashing runs in the default executor.
"""

import asyncio
from typing import Tuple, Optional

from argon2 import PasswordHasher

from .hashing import hash_password_sync, needs_rehash, verify_password_sync


async def hash_password(password: str, hasher: Optional[PasswordHasher] = None) -> str:
    """
    Hash a password using Argon2id.

    Raises:
        ValueError: Empty password
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password_sync, password, hasher)


async def verify_password(
    password: str,
    hashed: str,
    hasher: Optional[PasswordHasher] = None,
) -> bool:
    """Verify a password against an Argon2id or bcrypt hash."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password_sync, password, hashed, hasher)


async def verify_and_upgrade(
    password: str,
    hashed: str,
    hasher: Optional[PasswordHasher] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Verify password and return a new hash if an upgrade is needed.

    This is the function login flows should call.

    Returns:
        Tuple of (is_valid, new_hash_or_none)
    """
    if not await verify_password(password, hashed, hasher):
        return False, None

    if needs_rehash(hashed, hasher):
        return True, await hash_password(password, hasher)

    return True, None
