"""URL validation against SSRF.

Rejects non-HTTP schemes, denylisted hosts, private IP literals and hostnames
that resolve to private addresses, then normalizes the URL for citation use.

Validation resolves DNS once and the browser resolves again when it fetches,
so a rebinding window remains between the two lookups.
"""

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Iterable
from urllib.parse import urlsplit

from citefetch.core.exceptions import (
    BlockedHostError,
    InvalidURLError,
    PrivateIPNotAllowedError,
    SSRFDetectedError,
)
from citefetch.core.protocols import Resolver
from citefetch.utils.url import sanitize_url_detailed

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "0.0.0.0",
        "::1",
        "[::1]",
        "metadata.google.internal",
        "169.254.169.254",
        "metadata.azure.internal",
    }
)

PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "10.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)


def is_private_ip(address: str) -> bool:
    """Check whether an IP address string falls in a private range.

    Non-IP strings return False. IPv4-mapped IPv6 addresses are checked
    through their IPv4 form.
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in PRIVATE_NETWORKS)


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return False
    return True


async def resolve_all(hostname: str) -> list[str]:
    """Resolve ``hostname`` to every address the system resolver returns."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(info[4][0] for info in infos))


class UrlGuard:
    """Validate and normalize caller-supplied URLs.

    Args:
        resolver: Async callable returning every address for a hostname.
        blocked_hosts: Hostnames rejected outright.
        allowed_schemes: URL schemes accepted.
    """

    def __init__(
        self,
        resolver: Resolver | None = None,
        blocked_hosts: Iterable[str] = BLOCKED_HOSTS,
        allowed_schemes: Iterable[str] = ALLOWED_SCHEMES,
    ) -> None:
        self._resolver = resolver or resolve_all
        self.blocked_hosts = frozenset(h.lower() for h in blocked_hosts)
        self.allowed_schemes = frozenset(s.lower() for s in allowed_schemes)

    def _parse(self, raw: str) -> tuple[str, str]:
        if len(raw) > MAX_URL_LENGTH:
            raise InvalidURLError("URL too long", details=f"max {MAX_URL_LENGTH} characters")

        try:
            parts = urlsplit(raw.strip())
            # Accessing .port validates it
            _ = parts.port
        except ValueError as exc:
            raise InvalidURLError("Invalid URL", details=str(exc)) from exc

        scheme = parts.scheme.lower()
        if not scheme or not parts.netloc:
            raise InvalidURLError("Invalid URL")
        if scheme not in self.allowed_schemes:
            raise InvalidURLError("Blocked protocol", details=f"scheme '{scheme}' not allowed")

        hostname = (parts.hostname or "").lower()
        if not hostname:
            raise InvalidURLError("Invalid URL", details="missing hostname")
        return scheme, hostname

    async def validate(self, raw: str) -> str:
        """Validate ``raw`` and return the normalized URL.

        Raises:
            InvalidURLError: Too long, unparsable, bad scheme or unresolvable.
            BlockedHostError: Hostname on the denylist.
            PrivateIPNotAllowedError: IP literal in a private range.
            SSRFDetectedError: Hostname resolves to a private address.
        """
        _, hostname = self._parse(raw)
        ip_literal = _is_ip_literal(hostname)

        # Private literals get the more specific error even when also denylisted
        if ip_literal and is_private_ip(hostname):
            logger.warning("Private IP literal rejected: %s", hostname)
            raise PrivateIPNotAllowedError("Private IP not allowed", details=hostname)

        if hostname in self.blocked_hosts:
            logger.warning("Blocked host rejected: %s", hostname)
            raise BlockedHostError("Blocked host", details=hostname)

        if not ip_literal:
            await self._check_resolution(hostname)

        try:
            return sanitize_url_detailed(raw.strip()).sanitized
        except ValueError as exc:
            raise InvalidURLError("Invalid URL", details=str(exc)) from exc

    async def _check_resolution(self, hostname: str) -> None:
        try:
            addresses = await self._resolver(hostname)
        except (OSError, UnicodeError) as exc:
            raise InvalidURLError("Host could not be resolved", details=hostname) from exc

        if not addresses:
            raise InvalidURLError("Host could not be resolved", details=hostname)

        for address in addresses:
            if is_private_ip(address):
                logger.warning("SSRF attempt: %s resolves to %s", hostname, address)
                raise SSRFDetectedError("SSRF detected", details=hostname)


__all__ = [
    "UrlGuard",
    "is_private_ip",
    "resolve_all",
    "MAX_URL_LENGTH",
    "BLOCKED_HOSTS",
]
