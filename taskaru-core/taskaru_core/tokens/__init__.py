"""
Signed tokens: codec, access/refresh manager, blacklist and IP binding.
"""

from .blacklist import TokenBlacklist
from .codec import TokenCodec, b64url_decode, b64url_encode, hash_token
from .ip_binding import IPBindingMode, ip_allowed, same_network
from .manager import (
    ACCESS_TOKEN_TTL,
    AUDIENCE,
    ISSUER,
    REFRESH_TOKEN_TTL,
    ROTATION_THRESHOLD,
    SecureTokenManager,
)
from .models import TokenPair, TokenPayload, TokenType

__all__ = [
    "TokenCodec",
    "b64url_encode",
    "b64url_decode",
    "hash_token",
    "TokenBlacklist",
    "IPBindingMode",
    "ip_allowed",
    "same_network",
    "SecureTokenManager",
    "ACCESS_TOKEN_TTL",
    "REFRESH_TOKEN_TTL",
    "ROTATION_THRESHOLD",
    "ISSUER",
    "AUDIENCE",
    "TokenPair",
    "TokenPayload",
    "TokenType",
]
