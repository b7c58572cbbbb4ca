"""Structured article extraction from a rendered page.

Every field is produced by an ordered chain of strategies; the first
strategy returning a value wins. New heuristics are added by appending to
a chain, not by editing the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .errors import INSUFFICIENT_CONTENT, NAVIGATION_FAILED, RenderError, RenderTimeout
from .gate_config import (
    MAX_FALLBACK_PARAGRAPHS,
    MIN_CONTAINER_PARAGRAPH_CHARS,
    MIN_CONTENT_CHARS,
    MIN_FALLBACK_PARAGRAPH_CHARS,
)
from .html_normalize import clean_text
from .renderers import NavigationGuard, PageRenderer
from .trust_gate import ValidatedUrl

logger = logging.getLogger(__name__)

Strategy = Callable[[BeautifulSoup], Optional[str]]


@dataclass(frozen=True)
class MetaStrategy:
    """First element matching ``selector``; its attribute, else its text."""

    selector: str
    attribute: str = "content"

    def __call__(self, soup: BeautifulSoup) -> Optional[str]:
        el = soup.select_one(self.selector)
        if el is None:
            return None
        value = el.get(self.attribute) or el.get_text(" ", strip=True)
        if isinstance(value, list):
            value = " ".join(value)
        value = clean_text(value)
        return value or None


@dataclass(frozen=True)
class DocumentTitleStrategy:
    def __call__(self, soup: BeautifulSoup) -> Optional[str]:
        if soup.title is None:
            return None
        return clean_text(soup.title.get_text(" ", strip=True)) or None


@dataclass(frozen=True)
class ContainerStrategy:
    """Texts of all elements matching ``selector`` longer than ``min_length``."""

    selector: str
    min_length: int = MIN_CONTAINER_PARAGRAPH_CHARS

    def __call__(self, soup: BeautifulSoup) -> Optional[str]:
        texts = _element_texts(soup.select(self.selector), self.min_length)
        return "\n\n".join(texts) or None


@dataclass(frozen=True)
class ParagraphFallbackStrategy:
    """Any ``<p>`` longer than ``min_length``, capped at ``limit`` paragraphs."""

    min_length: int = MIN_FALLBACK_PARAGRAPH_CHARS
    limit: int = MAX_FALLBACK_PARAGRAPHS

    def __call__(self, soup: BeautifulSoup) -> Optional[str]:
        texts = _element_texts(soup.find_all("p"), self.min_length)
        return "\n\n".join(texts[: self.limit]) or None


def _element_texts(elements: Sequence, min_length: int) -> List[str]:
    texts: List[str] = []
    for el in elements:
        text = clean_text(el.get_text(" ", strip=True))
        if len(text) > min_length:
            texts.append(text)
    return texts


TITLE_CHAIN: List[Strategy] = [
    MetaStrategy('meta[property="og:title"]'),
    MetaStrategy('meta[name="twitter:title"]'),
    MetaStrategy("h1.article-title"),
    MetaStrategy("h1.entry-title"),
    MetaStrategy('h1[class*="title"]'),
    MetaStrategy("article h1"),
    MetaStrategy(".post-title"),
    MetaStrategy("h1"),
    DocumentTitleStrategy(),
]

IMAGE_CHAIN: List[Strategy] = [
    MetaStrategy('meta[property="og:image"]'),
    MetaStrategy('meta[name="twitter:image"]'),
    MetaStrategy('meta[property="og:image:url"]'),
]

PUBLISHED_CHAIN: List[Strategy] = [
    MetaStrategy('meta[property="article:published_time"]'),
    MetaStrategy('meta[name="publish-date"]'),
    MetaStrategy("time[datetime]", attribute="datetime"),
]

BODY_CHAIN: List[Strategy] = [
    ContainerStrategy("article .entry-content"),
    ContainerStrategy("article .post-content"),
    ContainerStrategy("article .article-content"),
    ContainerStrategy("article .content"),
    ContainerStrategy(".article-body"),
    ContainerStrategy(".story-body"),
    ContainerStrategy(".post-body"),
    ContainerStrategy('[itemprop="articleBody"]'),
    ContainerStrategy(".entry-content"),
    ContainerStrategy("article p"),
    ContainerStrategy("main p"),
    ParagraphFallbackStrategy(),
]


def first_match(soup: BeautifulSoup, chain: Sequence[Strategy]) -> Optional[str]:
    for strategy in chain:
        value = strategy(soup)
        if value:
            return value
    return None


@dataclass(frozen=True)
class RawExtraction:
    title: str
    body: str
    image_url: Optional[str]
    published_at: Optional[str]
    source_url: str


@dataclass(frozen=True)
class ExtractionFailed:
    reason: str
    detail: str = ""


ExtractionOutcome = Union[RawExtraction, ExtractionFailed]


def extract_from_html(
    html: str,
    source_url: str,
    *,
    base_url: Optional[str] = None,
    min_content_chars: int = MIN_CONTENT_CHARS,
) -> ExtractionOutcome:
    """Apply the strategy chains to rendered HTML."""

    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    body = first_match(soup, BODY_CHAIN) or ""
    if len(body) < min_content_chars:
        return ExtractionFailed(INSUFFICIENT_CONTENT, f"body_chars={len(body)}")

    image = first_match(soup, IMAGE_CHAIN)
    if image:
        image = urljoin(base_url or source_url, image)
    return RawExtraction(
        title=first_match(soup, TITLE_CHAIN) or "",
        body=body,
        image_url=image,
        published_at=first_match(soup, PUBLISHED_CHAIN),
        source_url=source_url,
    )


class PageExtractor:
    """Render a validated URL and extract its article."""

    def __init__(
        self,
        renderer: PageRenderer,
        *,
        min_content_chars: int = MIN_CONTENT_CHARS,
        guard: Optional[NavigationGuard] = None,
    ) -> None:
        self.renderer = renderer
        self.min_content_chars = min_content_chars
        self.guard = guard

    async def extract(self, validated: ValidatedUrl) -> ExtractionOutcome:
        logger.info("extracting %s via %s", validated.url, self.renderer.name)
        try:
            page = await self.renderer.render(validated.url, self.guard)
        except RenderTimeout as exc:
            logger.warning("%s: %s", validated.url, exc.message)
            return ExtractionFailed(exc.reason, exc.message)
        except RenderError as exc:
            logger.error("%s: %s", validated.url, exc.message)
            return ExtractionFailed(NAVIGATION_FAILED, exc.message)

        outcome = extract_from_html(
            page.html,
            validated.url,
            base_url=page.final_url,
            min_content_chars=self.min_content_chars,
        )
        if isinstance(outcome, RawExtraction):
            logger.info("raw title: %s", outcome.title)
            logger.info("content length: %d chars", len(outcome.body))
        else:
            logger.warning("%s: %s (%s)", validated.url, outcome.reason, outcome.detail)
        return outcome


__all__ = [
    "BODY_CHAIN",
    "ContainerStrategy",
    "DocumentTitleStrategy",
    "ExtractionFailed",
    "ExtractionOutcome",
    "IMAGE_CHAIN",
    "MetaStrategy",
    "PUBLISHED_CHAIN",
    "PageExtractor",
    "ParagraphFallbackStrategy",
    "RawExtraction",
    "Strategy",
    "TITLE_CHAIN",
    "extract_from_html",
    "first_match",
]
