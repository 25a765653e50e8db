"""
FastAPI dependency providers.

All injectable dependencies are plain functions used with FastAPI's
Depends() system.
"""

import hmac
import ipaddress
from functools import lru_cache
from typing import Optional, Tuple, Union

from fastapi import Request, Response

from ..csrf import TOKEN_TTL
from ..errors import CSRFInvalid
from ..session import SESSION_TIMEOUT
from .components import SecurityComponents

CSRF_HEADER = "X-CSRF-Token"
CSRF_COOKIE = "_csrf"
SESSION_ID_COOKIE = "sessionId"
SESSION_TOKEN_COOKIE = "session_token"
SESSION_CSRF_COOKIE = "csrf_token"
DEVICE_HEADER = "X-Device-ID"

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def get_components(request: Request) -> SecurityComponents:
    """Return the SecurityComponents stored on app.state."""
    return request.app.state.components


@lru_cache(maxsize=8)
def _proxy_networks(proxies: Tuple[str, ...]) -> Tuple[IPNetwork, ...]:
    return tuple(ipaddress.ip_network(p, strict=False) for p in proxies)


def _is_trusted(ip: str, networks: Tuple[IPNetwork, ...]) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in networks)


def client_ip(request: Request) -> Optional[str]:
    """
    Extract the client IP.

    Forwarding headers are only read when the direct peer is a trusted
    proxy. X-Forwarded-For is walked from the nearest hop, skipping
    trusted proxies, so a client-supplied leftmost value is ignored.
    """
    peer = request.client.host if request.client else None
    networks = _proxy_networks(get_components(request).settings.trusted_proxies)
    if peer is None or not _is_trusted(peer, networks):
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted(hop, networks):
                return hop
        if hops:
            return hops[0]
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return peer


async def require_csrf(request: Request) -> str:
    """
    Double-submit check followed by a registry redemption.

    The header must equal the ``_csrf`` cookie, and the registry must
    accept the token for the ``sessionId`` cookie. The token is consumed.

    Returns:
        The anti-forgery session id

    Raises:
        CSRFInvalid: Either check failed
    """
    header_token = request.headers.get(CSRF_HEADER)
    cookie_token = request.cookies.get(CSRF_COOKIE)
    session_id = request.cookies.get(SESSION_ID_COOKIE)

    if not header_token or not cookie_token or not session_id:
        raise CSRFInvalid("CSRF token missing")
    if not hmac.compare_digest(header_token.encode(), cookie_token.encode()):
        raise CSRFInvalid("CSRF header does not match cookie")

    components = get_components(request)
    result = await components.csrf.check_token(session_id, header_token, client_ip(request))
    if not result.valid:
        raise CSRFInvalid(f"CSRF token rejected: {result.reason.value}")
    return session_id


def _cookie(response: Response, request: Request, name: str, value: str, max_age: int, http_only: bool = True) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=http_only,
        secure=get_components(request).settings.is_production,
        samesite="strict",
        path="/",
    )


def set_csrf_cookies(response: Response, request: Request, session_id: str, token: str) -> None:
    if request.cookies.get(SESSION_ID_COOKIE) != session_id:
        _cookie(response, request, SESSION_ID_COOKIE, session_id, TOKEN_TTL)
    _cookie(response, request, CSRF_COOKIE, token, TOKEN_TTL)


def set_session_cookies(response: Response, request: Request, session_token: str, csrf_token: str) -> None:
    _cookie(response, request, SESSION_TOKEN_COOKIE, session_token, SESSION_TIMEOUT)
    # Readable by the frontend so it can echo it in X-CSRF-Token
    _cookie(response, request, SESSION_CSRF_COOKIE, csrf_token, SESSION_TIMEOUT, http_only=False)


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(SESSION_TOKEN_COOKIE, path="/")
    response.delete_cookie(SESSION_CSRF_COOKIE, path="/")
