"""Trusted source registry and citation selection.

The registry is an immutable value built once (normally from the bundled
``data/trusted_sources.json``) and injected into the Trust Gate and the
pipeline. Citation selection is a pluggable strategy so tests and audits
can make it deterministic.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import random
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..core.keys import (
    K_CITATION_PHRASES,
    K_DISPLAY_NAME_FOREIGN,
    K_DISPLAY_NAME_LOCAL,
    K_DOMAIN,
)
from .errors import RegistryError, UnknownSourceError
from .gate_config import DEFAULT_SOURCES_PATH
from .host_utils import match_domain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceEntry:
    domain: str
    display_name_local: str
    display_name_foreign: str
    citation_phrases: Tuple[str, ...]

    def __post_init__(self) -> None:
        domain = (self.domain or "").strip()
        if not domain or domain != domain.lower():
            raise RegistryError(f"Source domain must be non-empty lower-case: {self.domain!r}")
        if "://" in domain or domain.startswith("www."):
            raise RegistryError(f"Source domain must be a bare hostname: {self.domain!r}")
        phrases = tuple(p for p in self.citation_phrases if isinstance(p, str) and p.strip())
        if not phrases or len(phrases) != len(self.citation_phrases):
            raise RegistryError(f"Source {domain} needs non-empty citation phrases")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SourceEntry":
        try:
            return cls(
                domain=str(payload[K_DOMAIN]),
                display_name_local=str(payload[K_DISPLAY_NAME_LOCAL]),
                display_name_foreign=str(payload[K_DISPLAY_NAME_FOREIGN]),
                citation_phrases=tuple(payload[K_CITATION_PHRASES]),
            )
        except (KeyError, TypeError) as exc:
            raise RegistryError(f"Malformed source entry: {payload!r}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_DOMAIN: self.domain,
            K_DISPLAY_NAME_LOCAL: self.display_name_local,
            K_DISPLAY_NAME_FOREIGN: self.display_name_foreign,
            K_CITATION_PHRASES: list(self.citation_phrases),
        }


@dataclass(frozen=True)
class Attribution:
    local_name: str
    foreign_name: str
    phrase: str


# (entry, source_url) -> phrase
CitationSelector = Callable[[SourceEntry, str], str]


def pick_citation(entry: SourceEntry, rng: Optional[random.Random] = None) -> str:
    """Pick one phrase from the entry's bank, uniformly at random."""

    chooser = rng or random.Random()
    return chooser.choice(entry.citation_phrases)


def random_selector(rng: Optional[random.Random] = None) -> CitationSelector:
    chooser = rng or random.Random()

    def _select(entry: SourceEntry, source_url: str) -> str:
        return pick_citation(entry, chooser)

    return _select


def stable_selector() -> CitationSelector:
    """Same source URL always gets the same phrase."""

    def _select(entry: SourceEntry, source_url: str) -> str:
        digest = hashlib.sha256((source_url or entry.domain).encode("utf-8")).hexdigest()
        return entry.citation_phrases[int(digest[:8], 16) % len(entry.citation_phrases)]

    return _select


def round_robin_selector() -> CitationSelector:
    counters: Dict[str, Iterator[int]] = {}
    lock = threading.Lock()

    def _select(entry: SourceEntry, source_url: str) -> str:
        with lock:
            counter = counters.setdefault(entry.domain, itertools.count())
            idx = next(counter)
        return entry.citation_phrases[idx % len(entry.citation_phrases)]

    return _select


def selector_for_mode(mode: str, rng: Optional[random.Random] = None) -> CitationSelector:
    if mode == "random":
        return random_selector(rng)
    if mode == "stable":
        return stable_selector()
    if mode == "round_robin":
        return round_robin_selector()
    raise ValueError(f"Unsupported citation mode: {mode}")


class SourceRegistry:
    """Read-only lookup of trusted domains and their citation banks."""

    def __init__(self, entries: Iterable[SourceEntry], selector: Optional[CitationSelector] = None) -> None:
        by_domain: Dict[str, SourceEntry] = {}
        for entry in entries:
            if entry.domain in by_domain:
                raise RegistryError(f"Duplicate source domain: {entry.domain}")
            by_domain[entry.domain] = entry
        if not by_domain:
            raise RegistryError("Source registry is empty")
        self._entries: Mapping[str, SourceEntry] = dict(by_domain)
        self._selector: CitationSelector = selector or random_selector()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SourceEntry]:
        return iter(self._entries.values())

    @property
    def domains(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    def with_selector(self, selector: CitationSelector) -> "SourceRegistry":
        return SourceRegistry(self._entries.values(), selector)

    def lookup(self, hostname: str) -> Optional[SourceEntry]:
        """Exact or subdomain-suffix match, case-insensitive, ``www.`` ignored."""

        domain = match_domain(hostname, self._entries)
        if domain is None:
            return None
        return self._entries[domain]

    def require(self, hostname: str) -> SourceEntry:
        entry = self.lookup(hostname)
        if entry is None:
            raise UnknownSourceError(hostname)
        return entry

    def pick_citation(self, entry: SourceEntry, rng: Optional[random.Random] = None) -> str:
        if rng is not None:
            return pick_citation(entry, rng)
        return self._checked_phrase(entry, self._selector(entry, ""))

    def resolve_attribution(self, entry: SourceEntry, source_url: str = "") -> Attribution:
        phrase = self._checked_phrase(entry, self._selector(entry, source_url))
        return Attribution(
            local_name=entry.display_name_local,
            foreign_name=entry.display_name_foreign,
            phrase=phrase,
        )

    def _checked_phrase(self, entry: SourceEntry, phrase: str) -> str:
        if phrase not in entry.citation_phrases:
            raise RegistryError(f"Citation selector returned a phrase outside {entry.domain}'s bank")
        return phrase

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries.values()]


def parse_registry(payload: Any, selector: Optional[CitationSelector] = None) -> SourceRegistry:
    if not isinstance(payload, list):
        raise RegistryError("Registry JSON must be a list of source entries")
    return SourceRegistry((SourceEntry.from_dict(item) for item in payload), selector)


def load_registry(path: Optional[Path] = None, selector: Optional[CitationSelector] = None) -> SourceRegistry:
    """Load the registry JSON (bundled file when ``path`` is None)."""

    target = Path(path) if path is not None else DEFAULT_SOURCES_PATH
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RegistryError(f"Registry file not found: {target}") from exc
    except json.JSONDecodeError as exc:
        raise RegistryError(f"Registry file is not valid JSON: {target}") from exc
    registry = parse_registry(payload, selector)
    logger.debug("loaded %d trusted sources from %s", len(registry), target)
    return registry


__all__ = [
    "Attribution",
    "CitationSelector",
    "SourceEntry",
    "SourceRegistry",
    "load_registry",
    "parse_registry",
    "pick_citation",
    "random_selector",
    "round_robin_selector",
    "selector_for_mode",
    "stable_selector",
]
