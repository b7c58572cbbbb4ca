"""High-level exports for the newsgate workflows."""

from .gate_config import PipelineSettings
from .link_scanner import CandidateUrl, first_candidate, is_sole_url, scan
from .page_extractor import ExtractionFailed, PageExtractor, RawExtraction, extract_from_html
from .pipeline import (
    ExtractedArticle,
    ExtractionFailure,
    ExtractionPipeline,
    ExtractionSuccess,
    build_pipeline,
)
from .renderers import PageRenderer, PlaywrightRenderer, RenderedPage, StaticRenderer
from .rewrite import OpenAIRewriteClient, RewriteClient, RewriteOrchestrator
from .sources import Attribution, SourceEntry, SourceRegistry, load_registry
from .trust_gate import Rejected, TrustGate, ValidatedUrl

__all__ = [
    "Attribution",
    "CandidateUrl",
    "ExtractedArticle",
    "ExtractionFailed",
    "ExtractionFailure",
    "ExtractionPipeline",
    "ExtractionSuccess",
    "OpenAIRewriteClient",
    "PageExtractor",
    "PageRenderer",
    "PipelineSettings",
    "PlaywrightRenderer",
    "RawExtraction",
    "Rejected",
    "RenderedPage",
    "RewriteClient",
    "RewriteOrchestrator",
    "SourceEntry",
    "SourceRegistry",
    "StaticRenderer",
    "TrustGate",
    "ValidatedUrl",
    "build_pipeline",
    "extract_from_html",
    "first_candidate",
    "is_sole_url",
    "load_registry",
    "scan",
]
