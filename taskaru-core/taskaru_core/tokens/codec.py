"""
Token Codec
===========
Compact signed tokens: base64url(header).base64url(payload).base64url(signature).

The signature is HMAC-SHA256 over ``header + "." + payload`` with a
server-held secret. The algorithm is fixed; the header's ``alg`` field is
written for interoperability and never read back.
"""

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from ..config import SecuritySettings, get_settings
from ..errors import ConfigurationError, InvalidSignatureError, MalformedTokenError

HEADER = {"alg": "HS256", "typ": "JWT"}


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(segment + padding)
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError(f"Invalid base64url segment: {e}")


class TokenCodec:
    """
    Signs and verifies compact tokens.

    Args:
        secret: Explicit signing secret. When omitted the secret is read
            from ``settings.jwt_secret`` on every call.
        settings: Settings to read the secret from (defaults to get_settings())
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        settings: Optional[SecuritySettings] = None,
    ):
        self._secret = secret
        self._settings = settings

    def _signing_key(self) -> bytes:
        if self._secret:
            return self._secret.encode()
        settings = self._settings or get_settings()
        try:
            return settings.require("jwt_secret").encode()
        except ConfigurationError:
            raise ConfigurationError("Token signing secret is not configured")

    def _signature(self, key: bytes, signing_input: str) -> str:
        digest = hmac.new(key, signing_input.encode("ascii"), hashlib.sha256).digest()
        return b64url_encode(digest)

    def sign(self, payload: Dict[str, Any]) -> str:
        """
        Sign a payload.

        Raises:
            ConfigurationError: No signing secret available
        """
        key = self._signing_key()
        encoded_header = b64url_encode(
            json.dumps(HEADER, separators=(",", ":")).encode()
        )
        encoded_payload = b64url_encode(
            json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        )
        signing_input = f"{encoded_header}.{encoded_payload}"
        return f"{signing_input}.{self._signature(key, signing_input)}"

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify a token and return its payload.

        Raises:
            ConfigurationError: No signing secret available
            MalformedTokenError: Not exactly three segments, or undecodable payload
            InvalidSignatureError: Signature mismatch
        """
        key = self._signing_key()

        if not isinstance(token, str):
            raise MalformedTokenError("Token must be a string")
        parts = token.split(".")
        if len(parts) != 3:
            raise MalformedTokenError(f"Expected 3 token segments, got {len(parts)}")

        encoded_header, encoded_payload, signature = parts
        try:
            expected = self._signature(key, f"{encoded_header}.{encoded_payload}")
        except UnicodeEncodeError:
            raise MalformedTokenError("Token contains non-ASCII characters")

        if not hmac.compare_digest(expected.encode(), signature.encode("utf-8", "replace")):
            raise InvalidSignatureError("Token signature mismatch")

        try:
            payload = json.loads(b64url_decode(encoded_payload).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedTokenError(f"Token payload is not JSON: {e}")

        if not isinstance(payload, dict):
            raise MalformedTokenError("Token payload must be a JSON object")
        return payload


def hash_token(token: str) -> str:
    """SHA-256 of a raw token, so registries never retain the token itself."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
