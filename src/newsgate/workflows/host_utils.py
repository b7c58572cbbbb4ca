"""Hostname normalization and suffix matching shared by the gate and registry."""

from __future__ import annotations

from typing import Iterable, Optional


def idna_normalize(host: str) -> str:
    """Return a lowercase, IDNA-normalized host name."""

    h = (host or "").strip().rstrip(".").lower()
    if not h:
        return ""
    try:
        h = h.encode("idna").decode("ascii")
    except UnicodeError:
        pass
    return h


def strip_www(host: str) -> str:
    """Normalize a host and drop one leading ``www.`` label."""

    h = idna_normalize(host)
    if h.startswith("www."):
        return h[4:]
    return h


def domain_matches(host: str, domain: str) -> bool:
    """True when ``host`` equals ``domain`` or is a subdomain of it."""

    normalized = strip_www(host)
    token = (domain or "").strip().lower().lstrip(".")
    if not normalized or not token:
        return False
    return normalized == token or normalized.endswith(f".{token}")


def match_domain(host: str, domains: Iterable[str]) -> Optional[str]:
    """Return the most specific domain that ``host`` falls under, if any."""

    best: Optional[str] = None
    for domain in domains:
        if domain_matches(host, domain) and (best is None or len(domain) > len(best)):
            best = domain
    return best


__all__ = [
    "idna_normalize",
    "strip_www",
    "domain_matches",
    "match_domain",
]
