"""
Password Hasher
===============
Argon2id hasher configuration.
"""

from functools import lru_cache

from argon2 import PasswordHasher, Type

# ~300ms per hash on a typical server
TIME_COST = 3
MEMORY_COST = 65536  # 64MB
PARALLELISM = 4


def build_hasher(
    time_cost: int = TIME_COST,
    memory_cost: int = MEMORY_COST,
    parallelism: int = PARALLELISM,
) -> PasswordHasher:
    """Argon2id hasher with the given cost parameters."""
    return PasswordHasher(
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=32,
        salt_len=16,
        type=Type.ID,
    )


@lru_cache(maxsize=1)
def get_cached_hasher() -> PasswordHasher:
    """Get cached production hasher."""
    return build_hasher()
