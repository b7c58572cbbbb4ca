"""Pipeline defaults (identity, timeouts, thresholds, selectors, LLM endpoint).

Centralizes static defaults so the pipeline stages have no embedded magic
numbers. ``PipelineSettings`` is the runtime view; callers can build one
from the environment or inject their own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

# Paths (package-relative)
_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SOURCES_PATH = _ROOT / "data" / "trusted_sources.json"

# Client identity
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "ar,en-US;q=0.9,en;q=0.8"

# Browser session
BROWSER_LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)
BLOCKED_RESOURCE_TYPES = frozenset({"stylesheet", "font", "media"})
ALLOWED_SUBRESOURCE_SCHEMES = frozenset({"http", "https", "data", "blob"})
NAV_TIMEOUT_MS = 30_000
DOM_TIMEOUT_MS = 10_000
DNS_TIMEOUT_SECONDS = 5.0

# Static renderer
STATIC_MAX_BYTES = 2_000_000
STATIC_MAX_REDIRECTS = 5

# Extraction thresholds
MIN_CONTENT_CHARS = 100
MIN_CONTAINER_PARAGRAPH_CHARS = 50
MIN_FALLBACK_PARAGRAPH_CHARS = 100
MAX_FALLBACK_PARAGRAPHS = 10

# Link scanner
SOLE_URL_MAX_REMAINDER = 20

# Rewrite request
LLM_MODEL = "gpt-4o"
LLM_TIMEOUT_SECONDS = 60.0
LLM_TEMPERATURE = 0.7
LLM_MAX_TOKENS = 2000
REWRITE_BODY_CHARS = 4000
FALLBACK_EXCERPT_CHARS = 150

RENDERERS = ("playwright", "static")
CITATION_MODES = ("random", "stable", "round_robin")


def _env_int(name: str, default: int) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class PipelineSettings:
    """Runtime knobs for one pipeline instance."""

    sources_path: Path = DEFAULT_SOURCES_PATH
    user_agent: str = USER_AGENT
    nav_timeout_ms: int = NAV_TIMEOUT_MS
    dom_timeout_ms: int = DOM_TIMEOUT_MS
    min_content_chars: int = MIN_CONTENT_CHARS
    renderer: str = "playwright"
    resolve_dns: bool = True
    llm_api_base: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_model: str = LLM_MODEL
    llm_timeout: float = LLM_TIMEOUT_SECONDS
    citation_mode: str = "random"

    def __post_init__(self) -> None:
        if self.renderer not in RENDERERS:
            raise ValueError(f"Unsupported renderer: {self.renderer}")
        if self.citation_mode not in CITATION_MODES:
            raise ValueError(f"Unsupported citation mode: {self.citation_mode}")
        if self.nav_timeout_ms <= 0 or self.dom_timeout_ms <= 0:
            raise ValueError("Timeouts must be positive")

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        sources_env = os.getenv("NEWSGATE_SOURCES_PATH", "").strip()
        return cls(
            sources_path=Path(sources_env) if sources_env else DEFAULT_SOURCES_PATH,
            user_agent=os.getenv("NEWSGATE_USER_AGENT", "").strip() or USER_AGENT,
            nav_timeout_ms=_env_int("NEWSGATE_NAV_TIMEOUT_MS", NAV_TIMEOUT_MS),
            dom_timeout_ms=_env_int("NEWSGATE_DOM_TIMEOUT_MS", DOM_TIMEOUT_MS),
            min_content_chars=_env_int("NEWSGATE_MIN_CONTENT_CHARS", MIN_CONTENT_CHARS),
            renderer=(os.getenv("NEWSGATE_RENDERER", "playwright").strip().lower() or "playwright"),
            resolve_dns=_env_bool("NEWSGATE_RESOLVE_DNS", "1"),
            llm_api_base=os.getenv("NEWSGATE_LLM_API_BASE") or None,
            llm_api_key=os.getenv("NEWSGATE_LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
            llm_model=os.getenv("NEWSGATE_LLM_MODEL", "").strip() or LLM_MODEL,
            llm_timeout=_env_float("NEWSGATE_LLM_TIMEOUT", LLM_TIMEOUT_SECONDS),
            citation_mode=(os.getenv("NEWSGATE_CITATION_MODE", "random").strip().lower() or "random"),
        )
