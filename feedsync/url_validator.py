"""
URL Validator - keep outbound fetches away from internal networks.

Every URL the engine fetches (feed documents, article pages for readability,
icons and thumbnails) passes through validate_url() first. Feed URLs are
user-supplied, and redirects or item links can point anywhere.
"""

import ipaddress
import socket
from urllib.parse import urlparse

from .exceptions import SSRFError

# Ranges beyond what ipaddress flags as private/loopback/link-local
EXTRA_BLOCKED_NETWORKS = [
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("100.64.0.0/10"),  # Carrier-grade NAT
    ipaddress.ip_network("255.255.255.255/32"),
]

BLOCKED_HOSTNAMES = {
    "localhost",
    "localhost.localdomain",
    "ip6-localhost",
    "ip6-loopback",
    "metadata",
    "metadata.google.internal",
}

BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")

ALLOWED_SCHEMES = {"http", "https"}


def is_ip_blocked(ip_str: str) -> bool:
    """Check if an address is private, loopback, link-local or reserved."""
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_multicast or ip.is_unspecified:
        return True
    return any(ip in network for network in EXTRA_BLOCKED_NETWORKS)


def validate_url(url: str, resolve_dns: bool = True) -> str:
    """
    Validate a URL before fetching it.

    Args:
        url: The URL to validate
        resolve_dns: Also resolve the hostname and check every address

    Returns:
        The URL unchanged

    Raises:
        SSRFError: If the URL fails validation
    """
    parsed = urlparse(url)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise SSRFError(f"URL scheme '{parsed.scheme}' is not allowed")
    if not parsed.hostname:
        raise SSRFError("URL must include a hostname")

    hostname = parsed.hostname.lower()
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(BLOCKED_SUFFIXES):
        raise SSRFError(f"Access to '{hostname}' is not allowed")

    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        pass
    else:
        if is_ip_blocked(hostname):
            raise SSRFError(f"Access to IP address '{hostname}' is not allowed")
        return url

    if resolve_dns:
        try:
            addrinfo = socket.getaddrinfo(hostname, parsed.port or 80, proto=socket.IPPROTO_TCP)
        except (socket.gaierror, UnicodeError):
            # Unresolvable hosts fail at fetch time with a network error
            return url
        for _, _, _, _, sockaddr in addrinfo:
            if is_ip_blocked(sockaddr[0]):
                raise SSRFError(
                    f"Hostname '{hostname}' resolves to blocked IP address '{sockaddr[0]}'"
                )

    return url
