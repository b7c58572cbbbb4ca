"""Page renderers: turn a validated URL into DOM-ready HTML.

``PlaywrightRenderer`` drives headless Chromium with scripts enabled but
stylesheets, fonts and media blocked. ``StaticRenderer`` is a plain aiohttp
fetch for pages that do not need client-side rendering (and for tests).
Each ``render`` call owns its session and closes it on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urljoin, urlsplit

import aiohttp
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .errors import RenderError, RenderTimeout
from .gate_config import (
    ACCEPT_LANGUAGE,
    ALLOWED_SUBRESOURCE_SCHEMES,
    BLOCKED_RESOURCE_TYPES,
    BROWSER_LAUNCH_ARGS,
    STATIC_MAX_BYTES,
    STATIC_MAX_REDIRECTS,
    PipelineSettings,
)
from .html_normalize import decode_bytes_auto
from .trust_gate import is_private_hostname

logger = logging.getLogger(__name__)

# Returns False for a navigation target that must not be loaded.
NavigationGuard = Callable[[str], bool]

_REDIRECT_STATUSES = {301, 302, 303, 307, 308}


@dataclass
class RenderedPage:
    url: str
    final_url: str
    status: int
    html: str
    renderer: str


class PageRenderer(ABC):
    """Render a URL and return queryable HTML."""

    name = "abstract"

    @abstractmethod
    async def render(self, url: str, guard: Optional[NavigationGuard] = None) -> RenderedPage:
        """Raise ``RenderTimeout`` or ``RenderError``; never return partial pages."""


def subresource_allowed(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme.lower() not in ALLOWED_SUBRESOURCE_SCHEMES:
        return False
    host = parts.hostname or ""
    return not (host and is_private_hostname(host))


def build_route_handler(guard: Optional[NavigationGuard]) -> Callable[[Any, Any], Awaitable[None]]:
    """Request filter installed on the browser context before navigation.

    Main-frame navigations are fetched with ``max_redirects=0`` so every
    redirect hop passes through ``guard`` before the browser follows it.
    """

    async def _handle(route: Any, request: Any) -> None:
        if request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        if not subresource_allowed(request.url):
            logger.warning("blocked subresource %s", request.url)
            await route.abort("blockedbyclient")
            return
        is_main_navigation = request.is_navigation_request() and request.frame.parent_frame is None
        if guard is None or not is_main_navigation:
            await route.continue_()
            return
        if not guard(request.url):
            logger.warning("blocked navigation to %s", request.url)
            await route.abort("blockedbyclient")
            return
        response = await route.fetch(max_redirects=0)
        location = response.headers.get("location")
        if response.status in _REDIRECT_STATUSES and location:
            target = urljoin(request.url, location)
            if not guard(target):
                logger.warning("blocked redirect from %s to %s", request.url, target)
                await route.abort("blockedbyclient")
                return
        await route.fulfill(response=response)

    return _handle


def check_redirect_chain(url: str, response: Any, final_url: str, guard: Optional[NavigationGuard]) -> None:
    """Raise ``RenderError`` if any hop that produced the page fails ``guard``."""

    if guard is None:
        return
    hops = [final_url]
    request = response.request if response is not None else None
    while request is not None:
        hops.append(request.url)
        request = request.redirected_from
    for hop in hops:
        if not guard(hop):
            raise RenderError(url, f"redirect blocked: {hop}")


class PlaywrightRenderer(PageRenderer):
    name = "playwright"

    def __init__(self, settings: PipelineSettings) -> None:
        self.settings = settings

    async def render(self, url: str, guard: Optional[NavigationGuard] = None) -> RenderedPage:
        try:
            async with async_playwright() as p:
                return await self._render_with(p, url, guard)
        except RenderError:
            raise
        except PlaywrightError as exc:
            raise RenderError(url, f"browser error: {exc}", exc) from exc

    async def _render_with(self, p: Any, url: str, guard: Optional[NavigationGuard]) -> RenderedPage:
        browser = await p.chromium.launch(headless=True, args=list(BROWSER_LAUNCH_ARGS))
        context = None
        try:
            context = await browser.new_context(
                user_agent=self.settings.user_agent,
                viewport={"width": 1280, "height": 720},
                java_script_enabled=True,
                accept_downloads=False,
                service_workers="block",
                extra_http_headers={"Accept-Language": ACCEPT_LANGUAGE},
            )
            # Context-level routing also sees the first request of popups.
            await context.route("**/*", build_route_handler(guard))
            page = await context.new_page()
            try:
                response = await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self.settings.nav_timeout_ms,
                )
            except PlaywrightTimeoutError as exc:
                raise RenderTimeout(url, "navigation", exc) from exc
            except PlaywrightError as exc:
                raise RenderError(url, f"navigation failed: {exc}", exc) from exc
            try:
                await page.wait_for_selector(
                    "body",
                    state="attached",
                    timeout=self.settings.dom_timeout_ms,
                )
            except PlaywrightTimeoutError as exc:
                raise RenderTimeout(url, "dom", exc) from exc
            final_url = page.url
            check_redirect_chain(url, response, final_url, guard)
            html = await page.content()
            status = response.status if response is not None else 0
        finally:
            if context is not None:
                await context.close()
            await browser.close()
        return RenderedPage(url=url, final_url=final_url, status=status, html=html, renderer=self.name)


async def _read_capped(resp: aiohttp.ClientResponse, max_bytes: int, url: str) -> bytes:
    content = b""
    async for chunk in resp.content.iter_chunked(64 * 1024):
        content += chunk
        if len(content) > max_bytes:
            raise RenderError(url, "response too large")
    return content


class StaticRenderer(PageRenderer):
    """aiohttp fetch without script execution; redirects are followed by hand."""

    name = "static"

    def __init__(self, settings: PipelineSettings, max_bytes: int = STATIC_MAX_BYTES) -> None:
        self.settings = settings
        self.max_bytes = max_bytes

    async def render(self, url: str, guard: Optional[NavigationGuard] = None) -> RenderedPage:
        timeout = aiohttp.ClientTimeout(total=self.settings.nav_timeout_ms / 1000)
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            "Accept-Language": ACCEPT_LANGUAGE,
        }
        current = url
        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            for _ in range(STATIC_MAX_REDIRECTS + 1):
                try:
                    async with session.get(current, allow_redirects=False) as resp:
                        if resp.status in _REDIRECT_STATUSES:
                            location = resp.headers.get("Location")
                            if not location:
                                raise RenderError(url, f"redirect {resp.status} without location")
                            target = urljoin(current, location)
                            if guard is not None and not guard(target):
                                raise RenderError(url, f"redirect blocked: {target}")
                            current = target
                            continue
                        body = await _read_capped(resp, self.max_bytes, url)
                        html = decode_bytes_auto(body, resp.headers)
                        return RenderedPage(
                            url=url,
                            final_url=current,
                            status=resp.status,
                            html=html,
                            renderer=self.name,
                        )
                except asyncio.TimeoutError as exc:
                    raise RenderTimeout(url, "navigation", exc) from exc
                except aiohttp.ClientError as exc:
                    raise RenderError(url, f"navigation failed: {exc}", exc) from exc
        raise RenderError(url, "too many redirects")


def build_renderer(settings: PipelineSettings) -> PageRenderer:
    if settings.renderer == "static":
        return StaticRenderer(settings)
    return PlaywrightRenderer(settings)


__all__ = [
    "NavigationGuard",
    "PageRenderer",
    "PlaywrightRenderer",
    "RenderedPage",
    "StaticRenderer",
    "build_renderer",
    "build_route_handler",
    "check_redirect_chain",
    "subresource_allowed",
]
