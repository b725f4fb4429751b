"""Tests for link resolution and classification."""

import pytest

from indexer.models import LinkStatus, LinkType, MAX_LINK_TEXT
from pipelines.links import classify_link, resolve_href

SOURCE = "https://example.org/dir/index.html"
DOMAIN = "example.org"


class TestResolveHref:
    """Resolution of relative, protocol-relative and absolute hrefs."""

    def test_absolute_kept(self):
        assert resolve_href("https://other.com/a", SOURCE, "https://example.org") == "https://other.com/a"

    def test_protocol_relative_gets_https(self):
        assert resolve_href("//cdn.example.com/x", SOURCE, "https://example.org") == "https://cdn.example.com/x"

    def test_root_relative_joins_base(self):
        assert resolve_href("/forms", SOURCE, "https://example.org") == "https://example.org/forms"

    def test_relative_resolves_against_page(self):
        assert resolve_href("page.html", SOURCE, "https://example.org") == "https://example.org/dir/page.html"


class TestClassifyLink:
    """Link classification relative to the crawl domain."""

    def test_internal_link(self):
        link = classify_link("/forms", "https://example.org", "Forms", DOMAIN)
        assert link.url == "https://example.org/forms"
        assert link.link_type == LinkType.INTERNAL
        assert link.crawl_status == LinkStatus.PENDING
        assert link.source_url == "https://example.org"
        assert link.link_text == "Forms"

    def test_www_host_is_internal(self):
        link = classify_link("https://www.example.org/about", SOURCE, "", DOMAIN)
        assert link.link_type == LinkType.INTERNAL

    def test_external_link_is_skipped(self):
        link = classify_link("https://other.com/page", SOURCE, "Other", DOMAIN)
        assert link.link_type == LinkType.EXTERNAL
        assert link.crawl_status == LinkStatus.SKIPPED

    def test_subdomain_is_external(self):
        link = classify_link("https://shop.example.org/", SOURCE, "", DOMAIN)
        assert link.link_type == LinkType.EXTERNAL

    @pytest.mark.parametrize("href", ["/docs/guide.pdf", "/img/logo.PNG", "/files/data.xlsx"])
    def test_file_links(self, href):
        link = classify_link(href, SOURCE, "", DOMAIN)
        assert link.link_type == LinkType.FILE
        assert link.crawl_status == LinkStatus.SKIPPED

    @pytest.mark.parametrize("href", ["/page.php", "/page.HTML", "/default.aspx", "/Property-Owners"])
    def test_page_extensions_are_pages(self, href):
        assert classify_link(href, SOURCE, "", DOMAIN).link_type == LinkType.INTERNAL

    def test_email_and_tel(self):
        email = classify_link("mailto:info@example.org", SOURCE, "Email us", DOMAIN)
        tel = classify_link("tel:+13035551234", SOURCE, "Call", DOMAIN)
        assert email.link_type == LinkType.EMAIL
        assert email.url == "mailto:info@example.org"
        assert tel.link_type == LinkType.TEL

    @pytest.mark.parametrize("href", ["", "   ", "http://[invalid", "javascript:void(0)"])
    def test_invalid_links_yield_none(self, href):
        assert classify_link(href, SOURCE, "", DOMAIN) is None

    def test_classification_is_pure(self):
        first = classify_link("../other/page.html", SOURCE, "x", DOMAIN)
        second = classify_link("../other/page.html", SOURCE, "x", DOMAIN)
        assert first == second
        assert first.url == "https://example.org/other/page.html"

    def test_link_text_truncated(self):
        link = classify_link("/long", SOURCE, "x" * 800, DOMAIN)
        assert len(link.link_text) == MAX_LINK_TEXT
