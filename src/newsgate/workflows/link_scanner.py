"""Find URL-shaped substrings in free-form text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from .gate_config import SOLE_URL_MAX_REMAINDER

_URL_CHARS = r"[^\s<>\"{}|\\^`\[\]]+"
_URL_RE = re.compile(
    rf"(?P<scheme>https?://{_URL_CHARS})|(?P<bare>(?<![A-Za-z0-9_])www\.{_URL_CHARS})",
    re.IGNORECASE,
)
_TRAILING_PUNCT_RE = re.compile(r"[.,;:!?)\]]+$")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class CandidateUrl:
    raw: str
    normalized: str


def _strip_trailing_punctuation(value: str) -> str:
    return _TRAILING_PUNCT_RE.sub("", value)


def scan(text: str) -> List[CandidateUrl]:
    """Return candidates in order of first appearance, deduplicated by normalized form.

    Scheme-qualified links are kept as written; bare ``www.`` hosts get an
    ``https://`` prefix. Trailing sentence punctuation is dropped before
    normalizing.
    """

    seen = set()
    found: List[CandidateUrl] = []
    for match in _URL_RE.finditer(text or ""):
        raw = match.group(0)
        cleaned = _strip_trailing_punctuation(raw)
        if match.group("bare") is not None:
            if len(cleaned) <= len("www."):
                continue
            normalized = f"https://{cleaned}"
        else:
            if not _SCHEME_RE.sub("", cleaned):
                continue
            normalized = cleaned
        if normalized in seen:
            continue
        seen.add(normalized)
        found.append(CandidateUrl(raw=raw, normalized=normalized))
    return found


def first_candidate(text: str) -> Optional[CandidateUrl]:
    candidates = scan(text)
    return candidates[0] if candidates else None


def is_sole_url(text: str, threshold: int = SOLE_URL_MAX_REMAINDER) -> bool:
    """True when the text is essentially one link.

    The single detected URL is removed (normalized, scheme-stripped and raw
    forms); fewer than ``threshold`` non-whitespace characters may remain.
    """

    trimmed = (text or "").strip()
    candidates = scan(trimmed)
    if len(candidates) != 1:
        return False
    candidate = candidates[0]
    remainder = trimmed
    for form in (candidate.raw, candidate.normalized, _SCHEME_RE.sub("", candidate.normalized)):
        if form:
            remainder = remainder.replace(form, "")
    leftover = "".join(remainder.split())
    return len(leftover) < threshold


__all__ = ["CandidateUrl", "scan", "first_candidate", "is_sole_url"]
