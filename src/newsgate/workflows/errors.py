"""Exception types and reason codes shared by the pipeline stages."""

from __future__ import annotations

from typing import Dict, Optional

# Reason codes (machine readable)
NOT_A_URL = "not-a-url"
INVALID_URL = "invalid-url"
NON_HTTPS = "non-https"
PRIVATE_ADDRESS = "private-address"
DOMAIN_NOT_ALLOWLISTED = "domain-not-allowlisted"
NAVIGATION_TIMEOUT = "navigation-timeout"
DOM_TIMEOUT = "dom-timeout"
NAVIGATION_FAILED = "navigation-failed"
INSUFFICIENT_CONTENT = "insufficient-content"

REASON_MESSAGES: Dict[str, str] = {
    NOT_A_URL: "No link was found in the submitted text.",
    INVALID_URL: "The link could not be parsed or its host could not be resolved.",
    NON_HTTPS: "Only secure https links are accepted.",
    PRIVATE_ADDRESS: "The link points at a private or internal network address.",
    DOMAIN_NOT_ALLOWLISTED: "The link is not from a recognized news source.",
    NAVIGATION_TIMEOUT: "The page took too long to load.",
    DOM_TIMEOUT: "The page loaded but never became readable in time.",
    NAVIGATION_FAILED: "The page could not be opened.",
    INSUFFICIENT_CONTENT: "The page had no extractable article text.",
}

REASON_MESSAGES_LOCAL: Dict[str, str] = {
    NOT_A_URL: "لم يتم العثور على رابط في النص",
    INVALID_URL: "الرابط غير صالح",
    NON_HTTPS: "يُقبل فقط الروابط الآمنة (https)",
    PRIVATE_ADDRESS: "الرابط يشير إلى عنوان داخلي غير مسموح به",
    DOMAIN_NOT_ALLOWLISTED: "الرابط ليس من مصدر إخباري معتمد",
    NAVIGATION_TIMEOUT: "انتهت مهلة تحميل الصفحة",
    DOM_TIMEOUT: "انتهت مهلة تجهيز محتوى الصفحة",
    NAVIGATION_FAILED: "فشل في استخراج المحتوى",
    INSUFFICIENT_CONTENT: "لم يتم العثور على محتوى كافٍ في الصفحة",
}


def describe_reason(reason: str) -> str:
    return REASON_MESSAGES.get(reason, reason)


def describe_reason_local(reason: str) -> str:
    return REASON_MESSAGES_LOCAL.get(reason, REASON_MESSAGES_LOCAL[NAVIGATION_FAILED])


class NewsgateError(Exception):
    """Base class for newsgate errors."""


class RegistryError(NewsgateError):
    """Raised when registry configuration is malformed."""


class UnknownSourceError(NewsgateError):
    """Raised when a validated host has no registry entry."""

    def __init__(self, hostname: str):
        self.hostname = hostname
        super().__init__(f"No trusted source registered for host: {hostname}")


class RenderError(NewsgateError):
    """Raised by a renderer when a page cannot be produced."""

    def __init__(self, url: str, message: str, original_error: Optional[Exception] = None):
        self.url = url
        self.message = message
        self.original_error = original_error
        super().__init__(f"{url}: {message}")


class RenderTimeout(RenderError):
    """Navigation or DOM readiness exceeded its bound."""

    def __init__(self, url: str, stage: str, original_error: Optional[Exception] = None):
        self.stage = stage
        super().__init__(url, f"{stage} timeout", original_error)

    @property
    def reason(self) -> str:
        return NAVIGATION_TIMEOUT if self.stage == "navigation" else DOM_TIMEOUT


class RewriteDegraded(NewsgateError):
    """The language-model rewrite failed; the caller falls back to raw text."""
