"""
IP Binding
==========
Checks whether a refresh request comes from the same network family as the
address the token was issued to.
"""

import ipaddress
from enum import Enum
from typing import Optional


class IPBindingMode(str, Enum):
    EXACT = "exact"
    SUBNET = "subnet"
    NONE = "none"


IPV4_PREFIX = 24
IPV6_PREFIX = 64


def same_network(
    bound_ip: Optional[str],
    new_ip: Optional[str],
    ipv4_prefix: int = IPV4_PREFIX,
    ipv6_prefix: int = IPV6_PREFIX,
) -> bool:
    """True if both addresses fall in the same /24 (IPv4) or /64 (IPv6)."""
    if not bound_ip or not new_ip:
        return False
    if bound_ip == new_ip:
        return True
    try:
        old = ipaddress.ip_address(bound_ip)
        new = ipaddress.ip_address(new_ip)
    except ValueError:
        return False
    if old.version != new.version:
        return False

    prefix = ipv4_prefix if old.version == 4 else ipv6_prefix
    network = ipaddress.ip_network(f"{old}/{prefix}", strict=False)
    return new in network


def ip_allowed(
    mode: IPBindingMode,
    bound_ip: Optional[str],
    new_ip: Optional[str],
) -> bool:
    """Apply the configured binding mode."""
    if mode == IPBindingMode.NONE:
        return True
    if mode == IPBindingMode.EXACT:
        return bool(bound_ip) and bound_ip == new_ip
    return same_network(bound_ip, new_ip)
