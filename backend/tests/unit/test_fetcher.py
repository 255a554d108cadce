"""
Unit tests for the page fetcher and HTML extraction.
"""
import asyncio

import httpx
import pytest

from app.core.errors import NetworkError
from app.services.fetcher import (
    HtmlExtractor,
    PageFetcher,
    SeoData,
    completeness_score,
    content_hash,
)
from fixtures.sample_pages import (
    BROKEN_JSONLD_HTML,
    PERFECT_PAGE_HTML,
    POOR_SEO_PAGE_HTML,
    page_html,
    site_transport,
)


class TrickleStream(httpx.AsyncByteStream):
    """Sends a small chunk at a time with a pause between chunks."""

    def __init__(self, chunks: int = 50, pause: float = 0.05):
        self.chunks = chunks
        self.pause = pause

    async def __aiter__(self):
        yield b"<html><body>"
        for _ in range(self.chunks):
            await asyncio.sleep(self.pause)
            yield b"x " * 10


def extract(html: str, url: str = "https://example.com/perfect-page") -> SeoData:
    data = SeoData(url=url, final_url=url, status_code=200, content_type="text/html")
    return HtmlExtractor("example.com").extract(html, data)


class TestHtmlExtractor:
    """Test extraction of SEO fields from HTML."""

    def test_meta_fields(self):
        """Title, meta tags, canonical and language are extracted."""
        data = extract(PERFECT_PAGE_HTML)

        assert data.title == "Perfect SEO Page - Complete with All Elements"
        assert data.meta_description.startswith("A well optimized meta description")
        assert data.meta_keywords == "seo, crawler"
        assert data.meta_robots == "index, follow"
        assert data.canonical_url == "https://example.com/perfect-page"
        assert data.language == "en"

    def test_headings_in_document_order(self):
        data = extract(PERFECT_PAGE_HTML)

        assert data.headings_at(1) == ["Perfect SEO Page"]
        assert data.headings_at(2) == ["Section One", "Section Two"]
        assert data.headings_at(3) == ["Details"]
        assert [h["level"] for h in data.headings] == [1, 2, 2, 3]

    def test_images(self):
        """Image sources are absolute; empty alt is kept as empty."""
        data = extract(PERFECT_PAGE_HTML)

        assert [img["src"] for img in data.images] == [
            "https://example.com/images/hero.jpg",
            "https://example.com/images/chart.png",
        ]
        assert data.images[0]["alt"] == "Hero image"
        assert data.images[0]["width"] == "1200"
        assert data.images[1]["alt"] == ""

    def test_links(self):
        """Non-http hrefs and fragments are skipped; www counts as internal."""
        data = extract(PERFECT_PAGE_HTML)

        assert [link["href"] for link in data.links] == [
            "https://example.com/about",
            "https://www.example.com/contact",
            "https://partner.org/",
        ]
        assert [link["href"] for link in data.internal_links] == [
            "https://example.com/about",
            "https://www.example.com/contact",
        ]
        partner = data.external_links[0]
        assert partner["rel"] == "nofollow sponsored"
        assert partner["text"] == "Partner"

    def test_open_graph_and_structured_data(self):
        data = extract(PERFECT_PAGE_HTML)

        assert data.og_tags == {
            "title": "Perfect SEO Page",
            "description": "Optimized for social sharing",
            "image": "https://example.com/og-image.jpg",
            "type": "website",
        }
        assert data.structured_data == [
            {"@context": "https://schema.org", "@type": "WebPage", "name": "Perfect SEO Page"}
        ]
        assert data.errors == []

    def test_text_metrics(self):
        """Scripts are excluded from word count and hash."""
        data = extract(PERFECT_PAGE_HTML)

        assert data.word_count > 10
        assert len(data.content_hash) == 64

    def test_completeness(self):
        """A well-formed page scores high; a bare page scores zero."""
        assert extract(PERFECT_PAGE_HTML).completeness_score == 0.9
        assert extract(POOR_SEO_PAGE_HTML).completeness_score == 0.0

    def test_broken_json_ld_is_partial(self):
        """Invalid JSON-LD records an error but the rest is extracted."""
        data = extract(BROKEN_JSONLD_HTML)

        assert data.title == "Broken"
        assert data.headings_at(1) == ["Still parsed"]
        assert data.structured_data == []
        assert any("structured_data" in e for e in data.errors)

    def test_base_tag(self):
        """Relative links resolve against <base href>."""
        html = '<html><head><base href="https://example.com/docs/"></head><body><a href="intro">Intro</a></body></html>'
        data = extract(html, "https://example.com/")

        assert data.links[0]["href"] == "https://example.com/docs/intro"


class TestContentHash:
    """Test content hashing."""

    def test_cosmetic_differences_ignored(self):
        """Whitespace and case do not change the hash."""
        assert content_hash("Hello   World\n") == content_hash("hello world")

    def test_different_text(self):
        assert content_hash("hello world") != content_hash("hello there")

    def test_same_body_same_hash(self):
        """Two pages with the same visible text share a hash."""
        first = extract(page_html("Same", body="Identical body text"), "https://example.com/a")
        second = extract(page_html("Same", body="Identical  body text"), "https://example.com/b")

        assert first.content_hash == second.content_hash

    def test_score_without_images(self):
        """Pages without images get full image credit."""
        data = SeoData(url="u", final_url="u", status_code=200, title="T")
        assert completeness_score(data) == 0.4


class TestPageFetcher:
    """Test PageFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_fetch_html(self):
        fetcher = PageFetcher(transport=site_transport({"https://example.com/perfect-page": PERFECT_PAGE_HTML}))

        data = await fetcher.fetch("https://example.com/perfect-page")

        assert data.status_code == 200
        assert data.final_url == "https://example.com/perfect-page"
        assert data.is_html
        assert data.title.startswith("Perfect SEO Page")
        assert data.redirect_chain == []
        assert data.http_headers["content-type"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_redirect_chain_recorded(self):
        """Redirects are followed and every hop recorded."""
        fetcher = PageFetcher(transport=site_transport({
            "https://example.com/old": httpx.Response(301, headers={"location": "/interim"}),
            "https://example.com/interim": httpx.Response(302, headers={"location": "https://example.com/new"}),
            "https://example.com/new": page_html("New"),
        }))

        data = await fetcher.fetch("https://example.com/old")

        assert data.url == "https://example.com/old"
        assert data.final_url == "https://example.com/new"
        assert data.title == "New"
        assert data.redirect_chain == [
            {"url": "https://example.com/old", "status_code": 301},
            {"url": "https://example.com/interim", "status_code": 302},
        ]

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        """A redirect loop ends with an error instead of hanging."""
        fetcher = PageFetcher(
            max_redirects=2,
            transport=site_transport({
                "https://example.com/a": httpx.Response(302, headers={"location": "/b"}),
                "https://example.com/b": httpx.Response(302, headers={"location": "/a"}),
            }),
        )

        data = await fetcher.fetch("https://example.com/a")

        assert len(data.redirect_chain) == 3
        assert data.status_code == 302
        assert "Too many redirects" in data.errors[0]

    @pytest.mark.asyncio
    async def test_http_errors_are_data(self):
        """4xx responses are returned, not raised."""
        fetcher = PageFetcher(transport=site_transport({}))

        data = await fetcher.fetch("https://example.com/missing")

        assert data.status_code == 404
        assert data.title == ""

    @pytest.mark.asyncio
    async def test_non_html_not_parsed(self):
        fetcher = PageFetcher(transport=site_transport({
            "https://example.com/file": httpx.Response(
                200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"}
            ),
        }))

        data = await fetcher.fetch("https://example.com/file")

        assert not data.is_html
        assert data.content_length == 8
        assert data.content_hash == ""

    @pytest.mark.asyncio
    async def test_body_truncated(self):
        """Bodies beyond the byte budget are cut off."""
        fetcher = PageFetcher(
            max_bytes=100,
            transport=site_transport({"https://example.com/big": page_html("Big", body="x " * 500)}),
        )

        data = await fetcher.fetch("https://example.com/big")

        assert data.content_length == 100
        assert any("truncated" in e for e in data.errors)

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self):
        fetcher = PageFetcher(transport=site_transport({
            "https://example.com/slow": httpx.ReadTimeout("read timed out"),
        }))

        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch("https://example.com/slow")

        assert exc_info.value.reason == "timeout"
        assert exc_info.value.url == "https://example.com/slow"

    @pytest.mark.asyncio
    async def test_connection_error_raises_network_error(self):
        fetcher = PageFetcher(transport=site_transport({
            "https://example.com/down": httpx.ConnectError("connection refused"),
        }))

        with pytest.raises(NetworkError):
            await fetcher.fetch("https://example.com/down")

    @pytest.mark.asyncio
    async def test_slow_body_exceeds_time_budget(self):
        """A body that keeps streaming past the budget is cut off as a timeout."""

        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html"}, stream=TrickleStream())

        fetcher = PageFetcher(timeout=0.2, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch("https://example.com/trickle")

        assert exc_info.value.reason == "timeout"
        assert exc_info.value.url == "https://example.com/trickle"

    @pytest.mark.asyncio
    async def test_fast_stream_within_budget(self):
        def handler(request):
            return httpx.Response(
                200, headers={"content-type": "text/html"}, stream=TrickleStream(chunks=3, pause=0.01)
            )

        fetcher = PageFetcher(timeout=5, transport=httpx.MockTransport(handler))

        data = await fetcher.fetch("https://example.com/trickle")

        assert data.status_code == 200
        assert data.word_count == 30
