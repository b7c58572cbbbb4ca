"""Scan -> gate -> render/extract -> attribute -> rewrite.

``ExtractionPipeline.run`` returns either a complete ``ExtractionSuccess``
or an ``ExtractionFailure`` carrying a specific reason code. Gate and
extraction failures stop the pipeline; rewrite failures never do.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..core.keys import (
    K_ARTICLE,
    K_ATTRIBUTION,
    K_CONTENT,
    K_ERROR,
    K_ERROR_LOCAL,
    K_EXCERPT,
    K_IMAGE_URL,
    K_ORIGINAL_PUBLISH_DATE,
    K_REASON,
    K_REWRITE,
    K_SOURCE_NAME,
    K_SOURCE_NAME_LOCAL,
    K_SOURCE_URL,
    K_SUCCESS,
    K_TITLE,
)
from .errors import NAVIGATION_FAILED, NOT_A_URL, describe_reason, describe_reason_local
from .gate_config import PipelineSettings
from .link_scanner import first_candidate
from .page_extractor import ExtractionFailed, PageExtractor
from .renderers import PageRenderer, build_renderer
from .rewrite import RewriteClient, RewriteOrchestrator, build_rewrite_client
from .sources import SourceRegistry, load_registry, selector_for_mode
from .trust_gate import Rejected, Resolver, TrustGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedArticle:
    title: str
    content: str
    excerpt: str
    image_url: Optional[str]
    source_url: str
    source_name: str
    source_name_local: str
    attribution: str
    original_publish_date: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_TITLE: self.title,
            K_CONTENT: self.content,
            K_EXCERPT: self.excerpt,
            K_IMAGE_URL: self.image_url,
            K_SOURCE_URL: self.source_url,
            K_SOURCE_NAME: self.source_name,
            K_SOURCE_NAME_LOCAL: self.source_name_local,
            K_ATTRIBUTION: self.attribution,
            K_ORIGINAL_PUBLISH_DATE: self.original_publish_date,
        }


@dataclass(frozen=True)
class ExtractionSuccess:
    article: ExtractedArticle
    rewritten: bool = True

    success = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_SUCCESS: True,
            K_ARTICLE: self.article.to_dict(),
            K_REWRITE: "ai" if self.rewritten else "fallback",
        }


@dataclass(frozen=True)
class ExtractionFailure:
    reason: str
    detail: str = ""

    success = False

    @property
    def error(self) -> str:
        return describe_reason(self.reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_SUCCESS: False,
            K_REASON: self.reason,
            K_ERROR: self.error,
            K_ERROR_LOCAL: describe_reason_local(self.reason),
        }


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]


class ExtractionPipeline:
    def __init__(
        self,
        registry: SourceRegistry,
        gate: TrustGate,
        extractor: PageExtractor,
        orchestrator: RewriteOrchestrator,
        *,
        resolve_dns: bool = True,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.extractor = extractor
        self.orchestrator = orchestrator
        self.resolve_dns = resolve_dns

    async def run(self, text: str) -> ExtractionResult:
        """Extract the first link found in ``text``."""

        candidate = first_candidate(text)
        if candidate is None:
            return ExtractionFailure(NOT_A_URL)
        return await self.extract_url(candidate.normalized)

    async def extract_url(self, url: str) -> ExtractionResult:
        decision = await self.gate.admit(url, resolve=self.resolve_dns)
        if isinstance(decision, Rejected):
            return ExtractionFailure(decision.reason, decision.detail)

        try:
            outcome = await self.extractor.extract(decision)
        except Exception as exc:
            logger.exception("extraction crashed for %s", decision.url)
            return ExtractionFailure(NAVIGATION_FAILED, str(exc))
        if isinstance(outcome, ExtractionFailed):
            return ExtractionFailure(outcome.reason, outcome.detail)

        entry = self.registry.require(decision.hostname)
        attribution = self.registry.resolve_attribution(entry, decision.url)
        logger.info("source: %s (%s)", attribution.local_name, attribution.phrase)

        rewritten = await self.orchestrator.rewrite(outcome, attribution)
        article = ExtractedArticle(
            title=rewritten.title,
            content=rewritten.content,
            excerpt=rewritten.excerpt,
            image_url=outcome.image_url,
            source_url=decision.url,
            source_name=attribution.foreign_name,
            source_name_local=attribution.local_name,
            attribution=attribution.phrase,
            original_publish_date=outcome.published_at,
        )
        return ExtractionSuccess(article=article, rewritten=not rewritten.degraded)


def build_pipeline(
    settings: Optional[PipelineSettings] = None,
    *,
    registry: Optional[SourceRegistry] = None,
    renderer: Optional[PageRenderer] = None,
    rewrite_client: Optional[RewriteClient] = None,
    resolver: Optional[Resolver] = None,
    rng: Optional[random.Random] = None,
) -> ExtractionPipeline:
    """Wire a pipeline from settings; any collaborator may be injected."""

    settings = settings or PipelineSettings.from_env()
    selector = selector_for_mode(settings.citation_mode, rng)
    if registry is None:
        registry = load_registry(settings.sources_path, selector)
    gate = TrustGate(registry, resolver)
    extractor = PageExtractor(
        renderer or build_renderer(settings),
        min_content_chars=settings.min_content_chars,
        guard=gate.allows,
    )
    client = rewrite_client if rewrite_client is not None else build_rewrite_client(settings)
    orchestrator = RewriteOrchestrator(client, timeout=settings.llm_timeout)
    return ExtractionPipeline(
        registry,
        gate,
        extractor,
        orchestrator,
        resolve_dns=settings.resolve_dns,
    )


__all__ = [
    "ExtractedArticle",
    "ExtractionFailure",
    "ExtractionPipeline",
    "ExtractionResult",
    "ExtractionSuccess",
    "build_pipeline",
]
