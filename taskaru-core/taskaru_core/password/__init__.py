"""
Taskaru Core - Password Hashing
===============================
Argon2id password hashing for admin credentials.

Legacy bcrypt hashes still verify; on a successful login they are rehashed
with Argon2id and the caller stores the new hash.
"""

from .hasher import build_hasher, get_cached_hasher
from .hashing import (
    hash_password_sync,
    is_argon2_hash,
    is_bcrypt_hash,
    needs_rehash,
    verify_password_sync,
)
from .async_ops import hash_password, verify_password, verify_and_upgrade

__all__ = [
    # Hasher
    "build_hasher",
    "get_cached_hasher",
    # Async Operations
    "hash_password",
    "verify_password",
    "verify_and_upgrade",
    # Sync Operations
    "hash_password_sync",
    "verify_password_sync",
    "needs_rehash",
    "is_argon2_hash",
    "is_bcrypt_hash",
]
