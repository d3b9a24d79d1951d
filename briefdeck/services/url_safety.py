"""Outbound URL guard against server-side request forgery.

Two layers: ``check_url`` looks only at the URL text (scheme, host name,
literal IPs, port); ``ensure_public_url`` additionally resolves the host and
rejects it if any address it resolves to is non-public.
"""

import asyncio
import ipaddress
import logging
import socket
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})
ALLOWED_PORTS = frozenset({80, 443})
BLOCKED_HOSTS = frozenset({"localhost", "metadata.google.internal"})
BLOCKED_SUFFIXES = (".localhost", ".local", ".internal")


class UnsafeUrlError(ValueError):
    """Raised when a URL points at a non-public destination."""


def is_public_address(address: str) -> bool:
    """True when *address* is a globally routable IP literal."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_multicast
        or ip.is_reserved
    )


def check_url(url: str, allow_localhost: bool = False) -> str:
    """Validate *url* without touching the network.

    Returns the lowercased host. Raises UnsafeUrlError otherwise.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise UnsafeUrlError(f"Malformed URL: {url}") from e

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsafeUrlError(f"Scheme not allowed: {parts.scheme or '(none)'}")

    host = (parts.hostname or "").lower().rstrip(".")
    if not host:
        raise UnsafeUrlError(f"URL has no host: {url}")

    if port is not None and port not in ALLOWED_PORTS:
        raise UnsafeUrlError(f"Port not allowed: {port}")

    if allow_localhost:
        return host

    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        raise UnsafeUrlError(f"Host not allowed: {host}")

    try:
        ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        # Not an IP literal; the name is checked after resolution
        return host

    if not is_public_address(host):
        raise UnsafeUrlError(f"Address not allowed: {host}")
    return host


async def ensure_public_url(url: str, allow_localhost: bool = False) -> str:
    """Validate *url* and every address its host resolves to.

    Raises UnsafeUrlError for blocked URLs and for hosts that do not resolve.
    """
    host = check_url(url, allow_localhost=allow_localhost)
    if allow_localhost:
        return host

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise UnsafeUrlError(f"Cannot resolve host: {host}") from e

    addresses = {info[4][0] for info in infos}
    for address in addresses:
        if not is_public_address(address):
            logger.warning("Blocked %s: %s resolves to %s", url, host, address)
            raise UnsafeUrlError(f"Host {host} resolves to a non-public address")
    return host
