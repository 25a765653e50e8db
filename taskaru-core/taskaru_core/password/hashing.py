"""
Password Hash Primitives
========================
Blocking hash/verify calls. Admin credentials created by the old panel are
bcrypt; anything new is Argon2id.
"""

from typing import Optional

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .hasher import get_cached_hasher

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
ARGON2_PREFIX = "$argon2"


def is_bcrypt_hash(hashed: Optional[str]) -> bool:
    return bool(hashed) and hashed.startswith(BCRYPT_PREFIXES)


def is_argon2_hash(hashed: Optional[str]) -> bool:
    return bool(hashed) and hashed.startswith(ARGON2_PREFIX)


def hash_password_sync(password: str, hasher: Optional[PasswordHasher] = None) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    return (hasher or get_cached_hasher()).hash(password)


def verify_password_sync(
    password: str,
    hashed: str,
    hasher: Optional[PasswordHasher] = None,
) -> bool:
    """
    Check a password against an Argon2id or bcrypt hash.

    Unknown hash formats never verify.
    """
    if not password or not hashed:
        return False

    if is_argon2_hash(hashed):
        try:
            return (hasher or get_cached_hasher()).verify(hashed, password)
        except (VerificationError, InvalidHashError):
            return False

    if is_bcrypt_hash(hashed):
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    return False


def needs_rehash(hashed: Optional[str], hasher: Optional[PasswordHasher] = None) -> bool:
    """
    True for bcrypt hashes, Argon2 hashes with outdated parameters, and
    anything unrecognised.
    """
    if not is_argon2_hash(hashed):
        return True
    try:
        return (hasher or get_cached_hasher()).check_needs_rehash(hashed)
    except InvalidHashError:
        return True
