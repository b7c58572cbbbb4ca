"""Editorial rewrite through a language model, with a deterministic fallback.

The model is asked for a strict JSON object ``{title, content, excerpt}``.
A well-formed answer is used verbatim. Anything else (transport error,
timeout, unparseable text, missing or empty fields) degrades to the raw
extraction with the citation phrase prepended; the rewrite stage never
fails the pipeline.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..core.keys import K_CONTENT, K_EXCERPT, K_TITLE
from .errors import RewriteDegraded
from .gate_config import (
    FALLBACK_EXCERPT_CHARS,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
    REWRITE_BODY_CHARS,
    PipelineSettings,
)
from .page_extractor import RawExtraction
from .sources import Attribution

logger = logging.getLogger(__name__)

FALLBACK_SEPARATOR = "، "

_REQUIRED_FIELDS = (K_TITLE, K_CONTENT, K_EXCERPT)


@dataclass(frozen=True)
class RewriteRequest:
    title: str
    body: str
    source_name_local: str
    citation_phrase: str

    def to_payload(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "body": self.body,
            "sourceNameLocal": self.source_name_local,
            "citationPhrase": self.citation_phrase,
        }


@dataclass(frozen=True)
class RewrittenArticle:
    title: str
    content: str
    excerpt: str
    degraded: bool = False


class RewriteClient(ABC):
    """Black-box rewrite service: request in, raw model answer out."""

    @abstractmethod
    async def rewrite(self, request: RewriteRequest) -> Any:
        """Return the model answer (JSON text or an already-decoded mapping)."""


def build_messages(request: RewriteRequest) -> List[Dict[str, Any]]:
    system_msg = (
        "أنت محرر صحفي محترف في صحيفة سعودية. "
        "أعد صياغة الخبر الوارد بأسلوب صحفي احترافي مع الإشارة للمصدر. "
        "التعليمات: "
        "1) أعد صياغة العنوان بشكل جذاب ومختصر لا يتجاوز 80 حرفًا. "
        "2) أعد كتابة المحتوى بأسلوب صحفي سعودي احترافي. "
        f"3) أدرج صيغة الإسناد \"{request.citation_phrase}\" في بداية الخبر أو نهايته بشكل طبيعي. "
        "4) اكتب مقدمة مختصرة (excerpt) لا تتجاوز 160 حرفًا. "
        "5) حافظ على المعلومات الأساسية والأرقام والتواريخ. "
        'أجب بصيغة JSON فقط: {"title": "...", "content": "...", "excerpt": "..."}'
    )
    return [
        {"role": "system", "content": system_msg},
        {"role": "user", "content": json.dumps(request.to_payload(), ensure_ascii=False)},
    ]


def _decode_json_text(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass
    # Fenced code block
    if "```" in content:
        for part in content.split("```"):
            part = part.strip()
            candidate = part[4:].strip() if part.startswith("json") else part
            if not candidate.startswith("{"):
                continue
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue
    # Substring from first '{' to last '}'
    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(content[start : end + 1])
        except json.JSONDecodeError:
            pass
    raise RewriteDegraded("model answer is not JSON")


def parse_rewrite_payload(raw: Any) -> Dict[str, str]:
    """Validate the model answer; raise ``RewriteDegraded`` on any shape problem."""

    if raw is None:
        raise RewriteDegraded("empty model answer")
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", "replace")
    data = _decode_json_text(raw.strip()) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise RewriteDegraded("model answer is not an object")
    cleaned: Dict[str, str] = {}
    for key in _REQUIRED_FIELDS:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise RewriteDegraded(f"model answer missing '{key}'")
        cleaned[key] = value
    return cleaned


def fallback_rewrite(
    raw: RawExtraction,
    attribution: Attribution,
    excerpt_chars: int = FALLBACK_EXCERPT_CHARS,
) -> RewrittenArticle:
    return RewrittenArticle(
        title=raw.title,
        content=f"{attribution.phrase}{FALLBACK_SEPARATOR}{raw.body}",
        excerpt=raw.body[:excerpt_chars],
        degraded=True,
    )


class OpenAIRewriteClient(RewriteClient):
    """OpenAI-compatible chat completion in JSON mode; one attempt, no retries."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        model: str = LLM_MODEL,
        timeout: float = LLM_TIMEOUT_SECONDS,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=timeout,
            max_retries=0,
        )

    async def rewrite(self, request: RewriteRequest) -> Any:
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=build_messages(request),
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return resp.choices[0].message.content


def build_rewrite_client(settings: PipelineSettings) -> Optional[RewriteClient]:
    if not settings.llm_api_key:
        logger.warning("no language-model key configured; rewrites will use the raw extraction")
        return None
    return OpenAIRewriteClient(
        api_key=settings.llm_api_key,
        api_base=settings.llm_api_base,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
    )


class RewriteOrchestrator:
    def __init__(
        self,
        client: Optional[RewriteClient],
        *,
        body_chars: int = REWRITE_BODY_CHARS,
        excerpt_chars: int = FALLBACK_EXCERPT_CHARS,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.body_chars = body_chars
        self.excerpt_chars = excerpt_chars
        self.timeout = timeout

    def build_request(self, raw: RawExtraction, attribution: Attribution) -> RewriteRequest:
        return RewriteRequest(
            title=raw.title,
            body=raw.body[: self.body_chars],
            source_name_local=attribution.local_name,
            citation_phrase=attribution.phrase,
        )

    async def rewrite(self, raw: RawExtraction, attribution: Attribution) -> RewrittenArticle:
        try:
            if self.client is None:
                raise RewriteDegraded("no rewrite client configured")
            answer = await asyncio.wait_for(
                self.client.rewrite(self.build_request(raw, attribution)),
                timeout=self.timeout,
            )
            fields = parse_rewrite_payload(answer)
        except Exception as exc:  # CancelledError still propagates
            logger.warning("rewrite degraded for %s: %s", raw.source_url, str(exc) or type(exc).__name__)
            return fallback_rewrite(raw, attribution, self.excerpt_chars)
        return RewrittenArticle(
            title=fields[K_TITLE],
            content=fields[K_CONTENT],
            excerpt=fields[K_EXCERPT],
        )


__all__ = [
    "FALLBACK_SEPARATOR",
    "OpenAIRewriteClient",
    "RewriteClient",
    "RewriteOrchestrator",
    "RewriteRequest",
    "RewrittenArticle",
    "build_messages",
    "build_rewrite_client",
    "fallback_rewrite",
    "parse_rewrite_payload",
]
