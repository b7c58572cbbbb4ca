import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from newsgate.workflows import renderers
from newsgate.workflows.errors import RenderError, RenderTimeout
from newsgate.workflows.gate_config import PipelineSettings
from newsgate.workflows.renderers import (
    PlaywrightRenderer,
    StaticRenderer,
    build_renderer,
    build_route_handler,
    check_redirect_chain,
    subresource_allowed,
)


STORY = "https://www.reuters.com/world/story-123"
METADATA = "http://169.254.169.254/latest/meta-data/"
PAGE = "<html><body><p>story</p></body></html>"


def _reuters_only(url):
    return url.startswith("https://www.reuters.com/")


def _fetched(status, location=None):
    response = MagicMock()
    response.status = status
    response.headers = {"location": location} if location else {}
    return response


def _route():
    route = MagicMock()
    route.abort = AsyncMock()
    route.continue_ = AsyncMock()
    route.fetch = AsyncMock(return_value=_fetched(200))
    route.fulfill = AsyncMock()
    return route


def _request(url, resource_type="document", *, navigation=False, main_frame=True):
    request = MagicMock()
    request.url = url
    request.resource_type = resource_type
    request.is_navigation_request.return_value = navigation
    request.frame.parent_frame = None if main_frame else MagicMock()
    return request


@pytest.mark.parametrize(
    "url,allowed",
    [
        ("https://cdn.example.com/app.js", True),
        ("http://images.example.com/a.png", True),
        ("data:image/png;base64,iVBORw0KGgo=", True),
        ("file:///etc/passwd", False),
        ("ftp://example.com/file", False),
        ("http://127.0.0.1:8080/admin", False),
        ("http://169.254.169.254/latest/meta-data/", False),
    ],
)
def test_subresource_allowed(url, allowed):
    assert subresource_allowed(url) is allowed


@pytest.mark.parametrize("resource_type", ["stylesheet", "font", "media"])
def test_route_handler_blocks_heavy_resources(resource_type):
    route = _route()
    handler = build_route_handler(None)
    asyncio.run(handler(route, _request("https://www.reuters.com/a.css", resource_type)))
    route.abort.assert_awaited_once()
    route.continue_.assert_not_awaited()


def test_route_handler_blocks_private_subresources():
    route = _route()
    handler = build_route_handler(lambda url: True)
    asyncio.run(handler(route, _request("http://10.0.0.5/internal", "xhr")))
    route.abort.assert_awaited_once_with("blockedbyclient")


def test_route_handler_blocks_redirects_off_the_allowlist():
    route = _route()
    handler = build_route_handler(lambda url: url.startswith("https://www.reuters.com/"))
    asyncio.run(handler(route, _request("https://evil.example.com/landing", navigation=True)))
    route.abort.assert_awaited_once_with("blockedbyclient")


def test_route_handler_lets_iframes_and_scripts_through():
    guard = MagicMock(return_value=False)
    handler = build_route_handler(guard)

    iframe = _route()
    asyncio.run(handler(iframe, _request("https://ads.example.com/frame", navigation=True, main_frame=False)))
    iframe.continue_.assert_awaited_once()

    script = _route()
    asyncio.run(handler(script, _request("https://cdn.example.com/app.js", "script")))
    script.continue_.assert_awaited_once()
    guard.assert_not_called()


def test_route_handler_fetches_allowed_navigation_without_following_redirects():
    route = _route()
    handler = build_route_handler(lambda url: True)
    asyncio.run(handler(route, _request(STORY, navigation=True)))
    route.fetch.assert_awaited_once_with(max_redirects=0)
    route.fulfill.assert_awaited_once_with(response=route.fetch.return_value)
    route.abort.assert_not_awaited()


def test_route_handler_blocks_redirect_hop_to_metadata_address():
    route = _route()
    route.fetch.return_value = _fetched(302, METADATA)
    handler = build_route_handler(_reuters_only)
    asyncio.run(handler(route, _request(STORY, navigation=True)))
    route.abort.assert_awaited_once_with("blockedbyclient")
    route.fulfill.assert_not_awaited()


def test_route_handler_passes_relative_redirect_within_the_source():
    route = _route()
    route.fetch.return_value = _fetched(301, "/world/story-123-updated")
    guard = MagicMock(side_effect=_reuters_only)
    handler = build_route_handler(guard)
    asyncio.run(handler(route, _request(STORY, navigation=True)))
    guard.assert_called_with("https://www.reuters.com/world/story-123-updated")
    route.fulfill.assert_awaited_once()
    route.abort.assert_not_awaited()


def _hop(url, previous=None):
    request = MagicMock()
    request.url = url
    request.redirected_from = previous
    return request


def test_check_redirect_chain_rejects_any_off_list_hop():
    response = MagicMock()
    response.request = _hop(STORY, _hop(METADATA, _hop(STORY)))
    with pytest.raises(RenderError, match="redirect blocked"):
        check_redirect_chain(STORY, response, STORY, _reuters_only)
    check_redirect_chain(STORY, response, STORY, None)

    clean = MagicMock()
    clean.request = _hop(STORY)
    check_redirect_chain(STORY, clean, STORY, _reuters_only)
    with pytest.raises(RenderError):
        check_redirect_chain(STORY, None, METADATA, _reuters_only)


class _FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def _browser(monkeypatch, *, final_url=STORY, response=None):
    page = MagicMock()
    page.url = final_url
    page.goto = AsyncMock(return_value=response)
    page.wait_for_selector = AsyncMock()
    page.content = AsyncMock(return_value=PAGE)
    context = MagicMock()
    context.route = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    chromium = MagicMock()
    chromium.launch = AsyncMock(return_value=browser)
    monkeypatch.setattr(renderers, "async_playwright", lambda: _FakePlaywright(chromium))
    return browser, context, page


def _ok_response(url=STORY):
    response = MagicMock()
    response.status = 200
    response.request = _hop(url)
    return response


def test_playwright_renderer_returns_page_and_closes_browser(monkeypatch):
    browser, context, page = _browser(monkeypatch, response=_ok_response())
    rendered = asyncio.run(PlaywrightRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert rendered.html == PAGE
    assert rendered.final_url == STORY
    assert rendered.status == 200
    assert rendered.renderer == "playwright"
    assert context.route.await_args.args[0] == "**/*"
    context.close.assert_awaited_once()
    browser.close.assert_awaited_once()


def test_playwright_renderer_refuses_page_that_landed_off_the_allowlist(monkeypatch):
    browser, context, page = _browser(monkeypatch, final_url=METADATA, response=_ok_response(METADATA))
    with pytest.raises(RenderError, match="redirect blocked"):
        asyncio.run(PlaywrightRenderer(PipelineSettings()).render(STORY, _reuters_only))
    page.content.assert_not_awaited()
    context.close.assert_awaited_once()
    browser.close.assert_awaited_once()


def test_playwright_navigation_timeout_closes_browser(monkeypatch):
    browser, context, page = _browser(monkeypatch)
    page.goto.side_effect = renderers.PlaywrightTimeoutError("Timeout 30000ms exceeded")
    with pytest.raises(RenderTimeout) as excinfo:
        asyncio.run(PlaywrightRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert excinfo.value.stage == "navigation"
    context.close.assert_awaited_once()
    browser.close.assert_awaited_once()


def test_playwright_dom_timeout_closes_browser(monkeypatch):
    browser, context, page = _browser(monkeypatch, response=_ok_response())
    page.wait_for_selector.side_effect = renderers.PlaywrightTimeoutError("Timeout 10000ms exceeded")
    with pytest.raises(RenderTimeout) as excinfo:
        asyncio.run(PlaywrightRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert excinfo.value.stage == "dom"
    page.content.assert_not_awaited()
    context.close.assert_awaited_once()
    browser.close.assert_awaited_once()


def test_playwright_navigation_error_closes_browser(monkeypatch):
    browser, context, page = _browser(monkeypatch)
    page.goto.side_effect = renderers.PlaywrightError("net::ERR_BLOCKED_BY_CLIENT")
    with pytest.raises(RenderError) as excinfo:
        asyncio.run(PlaywrightRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert not isinstance(excinfo.value, RenderTimeout)
    assert "navigation failed" in excinfo.value.message
    context.close.assert_awaited_once()
    browser.close.assert_awaited_once()


class _FakeResponse:
    def __init__(self, status, headers=None, chunks=()):
        self.status = status
        self.headers = headers or {}
        self.content = self
        self._chunks = list(chunks)

    async def iter_chunked(self, size):
        for chunk in self._chunks:
            yield chunk

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def __call__(self, **kwargs):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, allow_redirects=True):
        assert allow_redirects is False
        self.requested.append(url)
        return self.responses[url]


def _html(body=PAGE):
    return _FakeResponse(200, {"Content-Type": "text/html; charset=utf-8"}, [body.encode("utf-8")])


def test_static_renderer_follows_redirects_inside_the_source(monkeypatch):
    session = _FakeSession(
        {
            STORY: _FakeResponse(301, {"Location": "/world/story-123-updated"}),
            "https://www.reuters.com/world/story-123-updated": _html(),
        }
    )
    monkeypatch.setattr(aiohttp, "ClientSession", session)
    rendered = asyncio.run(StaticRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert rendered.final_url == "https://www.reuters.com/world/story-123-updated"
    assert rendered.html == PAGE
    assert rendered.renderer == "static"


def test_static_renderer_never_requests_blocked_redirect_target(monkeypatch):
    session = _FakeSession({STORY: _FakeResponse(302, {"Location": METADATA})})
    monkeypatch.setattr(aiohttp, "ClientSession", session)
    with pytest.raises(RenderError, match="redirect blocked"):
        asyncio.run(StaticRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert session.requested == [STORY]


def test_static_renderer_caps_the_body(monkeypatch):
    session = _FakeSession({STORY: _FakeResponse(200, {}, [b"x" * 8, b"x" * 8])})
    monkeypatch.setattr(aiohttp, "ClientSession", session)
    with pytest.raises(RenderError, match="response too large"):
        asyncio.run(StaticRenderer(PipelineSettings(), max_bytes=10).render(STORY, _reuters_only))


def test_static_renderer_gives_up_on_redirect_loops(monkeypatch):
    session = _FakeSession({STORY: _FakeResponse(302, {"Location": STORY})})
    monkeypatch.setattr(aiohttp, "ClientSession", session)
    with pytest.raises(RenderError, match="too many redirects"):
        asyncio.run(StaticRenderer(PipelineSettings()).render(STORY, _reuters_only))
    assert len(session.requested) == renderers.STATIC_MAX_REDIRECTS + 1


def test_static_renderer_maps_timeouts_and_client_errors(monkeypatch):
    class _Raising(_FakeSession):
        def __init__(self, error):
            super().__init__({})
            self.error = error

        def get(self, url, allow_redirects=True):
            raise self.error

    monkeypatch.setattr(aiohttp, "ClientSession", _Raising(asyncio.TimeoutError()))
    with pytest.raises(RenderTimeout):
        asyncio.run(StaticRenderer(PipelineSettings()).render(STORY))

    monkeypatch.setattr(aiohttp, "ClientSession", _Raising(aiohttp.ClientConnectionError("refused")))
    with pytest.raises(RenderError, match="navigation failed"):
        asyncio.run(StaticRenderer(PipelineSettings()).render(STORY))


def test_build_renderer_follows_settings():
    assert isinstance(build_renderer(PipelineSettings()), PlaywrightRenderer)
    assert isinstance(build_renderer(PipelineSettings(renderer="static")), StaticRenderer)
