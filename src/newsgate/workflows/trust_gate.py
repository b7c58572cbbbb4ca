"""URL admission checks that must pass before any server-side fetch.

Checks are hard gates: https only, no private/loopback/link-local hosts,
and the host must fall under a registered trusted domain. The literal
hostname is checked synchronously; ``verify_resolution`` repeats the
private-address check against resolved addresses just before rendering.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union
from urllib.parse import SplitResult, urlsplit

from .errors import (
    DOMAIN_NOT_ALLOWLISTED,
    INVALID_URL,
    NON_HTTPS,
    PRIVATE_ADDRESS,
    describe_reason,
)
from .gate_config import DNS_TIMEOUT_SECONDS
from .host_utils import idna_normalize
from .sources import SourceEntry, SourceRegistry

logger = logging.getLogger(__name__)

_PRIVATE_HOST_PATTERNS = [
    re.compile(r"^localhost$"),
    re.compile(r"\.localhost$"),
    re.compile(r"^localhost\.localdomain$"),
    re.compile(r"^127\."),
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^0\."),
    re.compile(r"^169\.254\."),
]

_PRIVATE_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

_HOST_CHARS_RE = re.compile(r"^[a-z0-9.-]+$")

Resolver = Callable[[str], Awaitable[List[str]]]


@dataclass(frozen=True)
class ValidatedUrl:
    url: str
    hostname: str
    matched_source: SourceEntry


@dataclass(frozen=True)
class Rejected:
    url: str
    reason: str
    detail: str = ""

    @property
    def message(self) -> str:
        return describe_reason(self.reason)


GateDecision = Union[ValidatedUrl, Rejected]


def is_private_address(value: str) -> bool:
    """True for any IP literal that is not a public unicast address."""

    try:
        ip = ipaddress.ip_address(value.strip("[]").split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if any(ip in net for net in _PRIVATE_NETS if net.version == ip.version):
        return True
    return not ip.is_global


def is_private_hostname(hostname: str) -> bool:
    """Literal check on the host as written in the URL."""

    host = idna_normalize((hostname or "").strip("[]"))
    if not host:
        return False
    if any(pattern.search(host) for pattern in _PRIVATE_HOST_PATTERNS):
        return True
    return is_private_address(host)


def _valid_host(host: str) -> bool:
    host = host.strip("[]")
    if _HOST_CHARS_RE.match(idna_normalize(host)):
        return True
    try:
        ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return False
    return True


def _split(url: str) -> Optional[SplitResult]:
    try:
        parts = urlsplit((url or "").strip())
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return None
    # Browsers read "\" as "/" in http(s) URLs, urlsplit does not.
    if "\\" in parts.netloc:
        return None
    if parts.hostname and not _valid_host(parts.hostname):
        return None
    return parts


def check_scheme(url: str) -> Optional[Rejected]:
    parts = _split(url)
    if parts is None:
        return Rejected(url, INVALID_URL, "unparseable url")
    if parts.scheme.lower() != "https":
        return Rejected(url, NON_HTTPS, f"scheme={parts.scheme or 'none'}")
    return None


def check_private_host(url: str) -> Optional[Rejected]:
    parts = _split(url)
    if parts is None:
        return Rejected(url, INVALID_URL, "unparseable url")
    host = parts.hostname or ""
    if host and is_private_hostname(host):
        return Rejected(url, PRIVATE_ADDRESS, f"host={host}")
    return None


def check_allowlist(url: str, registry: SourceRegistry) -> Union[SourceEntry, Rejected]:
    parts = _split(url)
    host = idna_normalize(parts.hostname or "") if parts is not None else ""
    if not host:
        return Rejected(url, INVALID_URL, "missing host")
    entry = registry.lookup(host)
    if entry is None:
        return Rejected(url, DOMAIN_NOT_ALLOWLISTED, f"host={host}")
    return entry


async def default_resolver(hostname: str) -> List[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, 443, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


class TrustGate:
    """Admit only https links to registered, publicly routed news hosts."""

    def __init__(
        self,
        registry: SourceRegistry,
        resolver: Optional[Resolver] = None,
        *,
        resolve_timeout: float = DNS_TIMEOUT_SECONDS,
    ) -> None:
        self.registry = registry
        self._resolver: Resolver = resolver or default_resolver
        self.resolve_timeout = resolve_timeout

    def validate(self, url: str) -> GateDecision:
        # A literal private host is reported as such even over plain http.
        for check in (check_private_host, check_scheme):
            rejection = check(url)
            if rejection is not None:
                return self._reject(rejection)
        matched = check_allowlist(url, self.registry)
        if isinstance(matched, Rejected):
            return self._reject(matched)
        parts = urlsplit(url.strip())
        return ValidatedUrl(
            url=url.strip(),
            hostname=idna_normalize(parts.hostname or ""),
            matched_source=matched,
        )

    def allows(self, url: str) -> bool:
        """Quiet literal check, used to guard redirects during rendering."""

        if check_private_host(url) or check_scheme(url):
            return False
        return not isinstance(check_allowlist(url, self.registry), Rejected)

    async def verify_resolution(self, validated: ValidatedUrl) -> Optional[Rejected]:
        """Reject hosts whose DNS answers include a non-public address."""

        try:
            addresses = await asyncio.wait_for(
                self._resolver(validated.hostname), timeout=self.resolve_timeout
            )
        except asyncio.TimeoutError:
            return self._reject(Rejected(validated.url, INVALID_URL, "dns: timeout"))
        except (OSError, UnicodeError) as exc:
            return self._reject(Rejected(validated.url, INVALID_URL, f"dns: {exc}"))
        if not addresses:
            return self._reject(Rejected(validated.url, INVALID_URL, "dns: no addresses"))
        private = [addr for addr in addresses if is_private_address(addr)]
        if private:
            return self._reject(
                Rejected(validated.url, PRIVATE_ADDRESS, f"resolved={','.join(private)}")
            )
        return None

    async def admit(self, url: str, *, resolve: bool = True) -> GateDecision:
        """Literal validation followed by the DNS re-check."""

        decision = self.validate(url)
        if isinstance(decision, Rejected) or not resolve:
            return decision
        rejection = await self.verify_resolution(decision)
        return rejection or decision

    @staticmethod
    def _reject(rejection: Rejected) -> Rejected:
        logger.warning("rejected %s: %s (%s)", rejection.url, rejection.reason, rejection.detail)
        return rejection


__all__ = [
    "GateDecision",
    "Rejected",
    "Resolver",
    "TrustGate",
    "ValidatedUrl",
    "check_allowlist",
    "check_private_host",
    "check_scheme",
    "default_resolver",
    "is_private_address",
    "is_private_hostname",
]
