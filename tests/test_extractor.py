"""Tests for HTML extraction and the HTTP content extractor."""

from datetime import datetime, timezone

import aiohttp
import pytest

from indexer.models import LinkType
from pipelines.extractor import (
    ACCEPT_HTML,
    ContentExtractor,
    parse_html,
    parse_last_modified,
    parse_sitemap,
)

PAGE_HTML = """
<html>
  <head>
    <title> Fence Guidelines </title>
    <meta name="description" content="Rules for fences">
    <script>var tracking = 1;</script>
    <style>.x { color: red; }</style>
  </head>
  <body>
    <nav><a href="/nav-only">Navigation link</a></nav>
    <div class="menu">Menu text</div>
    <main>
      <h1>Fences</h1>
      <p>Fences   must be
         Highlands Ranch Brown.</p>
      <a href="/forms">Forms</a>
      <a href="https://other.com/info">Other site</a>
      <a href="mailto:arc@example.org">Email</a>
    </main>
    <footer>Footer text <a href="/privacy">Privacy</a></footer>
  </body>
</html>
"""


class FakeResponse:
    def __init__(self, body="", status=200, headers=None):
        self.body = body
        self.status = status
        self.headers = headers or {}

    async def text(self, errors="strict"):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


class TestParseHtml:
    """Pure HTML-to-page extraction."""

    def test_strips_chrome_and_collapses_whitespace(self):
        page = parse_html(PAGE_HTML, "https://example.org/fences", "example.org")
        assert page.title == "Fence Guidelines"
        assert page.meta_description == "Rules for fences"
        assert "Fences must be Highlands Ranch Brown." in page.text
        assert "tracking" not in page.text
        assert "Navigation link" not in page.text
        assert "Footer text" not in page.text
        assert "Menu text" not in page.text
        assert "  " not in page.text

    def test_links_are_classified(self):
        page = parse_html(PAGE_HTML, "https://example.org/fences", "example.org")
        by_url = {link.url: link.link_type for link in page.links}
        assert by_url == {
            "https://example.org/forms": LinkType.INTERNAL,
            "https://other.com/info": LinkType.EXTERNAL,
            "mailto:arc@example.org": LinkType.EMAIL,
        }

    def test_no_domain_means_no_links(self):
        assert parse_html(PAGE_HTML, "https://example.org/fences").links == []

    def test_content_container_preference(self):
        html = "<html><body><p>outside</p><div class='content'>inside text</div></body></html>"
        assert parse_html(html, "https://example.org").text == "inside text"

    def test_falls_back_to_body(self):
        html = "<html><body><p>only   body</p></body></html>"
        assert parse_html(html, "https://example.org").text == "only body"


def test_parse_sitemap_filters_to_base_url():
    xml = """<?xml version="1.0"?>
    <urlset>
      <url><loc>https://example.org/a</loc></url>
      <url><loc> https://example.org/b </loc></url>
      <url><loc>https://elsewhere.com/c</loc></url>
    </urlset>"""
    assert parse_sitemap(xml, "https://example.org") == ["https://example.org/a", "https://example.org/b"]


def test_parse_last_modified():
    parsed = parse_last_modified("Wed, 21 Oct 2015 07:28:00 GMT")
    assert parsed == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)
    assert parse_last_modified("not a date") is None
    assert parse_last_modified(None) is None


class TestContentExtractor:
    """HTTP fetch behaviour with a stubbed aiohttp session."""

    @pytest.mark.asyncio
    async def test_fetch_returns_page_with_metadata(self, site):
        session = FakeSession({
            "https://example.org/fences": FakeResponse(PAGE_HTML, 200, {
                "content-type": "text/html; charset=utf-8",
                "last-modified": "Wed, 21 Oct 2015 07:28:00 GMT",
            })
        })
        extractor = ContentExtractor(site, session=session)
        page = await extractor.fetch("https://example.org/fences")

        assert page.ok
        assert page.status == 200
        assert page.content_type == "text/html; charset=utf-8"
        assert page.last_modified.year == 2015
        assert page.title == "Fence Guidelines"
        headers = session.calls[0][1]["headers"]
        assert headers["User-Agent"] == site.user_agent
        assert headers["Accept"] == ACCEPT_HTML

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self, site):
        session = FakeSession({"https://example.org/down": aiohttp.ClientConnectionError("refused")})
        extractor = ContentExtractor(site, session=session)
        assert await extractor.fetch("https://example.org/down") is None

    @pytest.mark.asyncio
    async def test_error_status_is_reported(self, site):
        session = FakeSession({"https://example.org/missing": FakeResponse("<html></html>", 404)})
        page = await ContentExtractor(site, session=session).fetch("https://example.org/missing")
        assert page is not None
        assert not page.ok

    @pytest.mark.asyncio
    async def test_sitemap_missing_yields_empty_list(self, site):
        session = FakeSession({"https://example.org/sitemap.xml": FakeResponse("", 404)})
        assert await ContentExtractor(site, session=session).fetch_sitemap_urls() == []

    @pytest.mark.asyncio
    async def test_sitemap_urls(self, site):
        xml = "<urlset><url><loc>https://example.org/x</loc></url></urlset>"
        session = FakeSession({"https://example.org/sitemap.xml": FakeResponse(xml, 200)})
        assert await ContentExtractor(site, session=session).fetch_sitemap_urls() == ["https://example.org/x"]

    @pytest.mark.asyncio
    async def test_fetch_document_uses_document_cleanup(self, site):
        html = ("<html><body><header>Site header</header>"
                "<div class='main-content'>Curated rules text</div></body></html>")
        session = FakeSession({
            "https://example.org/rules": FakeResponse(html, 200),
            "https://example.org/gone": FakeResponse("", 410),
        })
        extractor = ContentExtractor(site, session=session)
        page = await extractor.fetch_document("https://example.org/rules")
        assert page.text == "Curated rules text"
        assert page.links == []
        assert await extractor.fetch_document("https://example.org/gone") is None

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, site):
        session = FakeSession({})
        extractor = ContentExtractor(site, session=session)
        await extractor.close()
        assert extractor.session is session
