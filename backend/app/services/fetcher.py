"""
Page Fetcher & Extractor

Fetches one URL (following redirects manually so the full chain is
recorded) and extracts SEO data from HTML responses:
- Title, meta description/keywords/robots, canonical, language
- Headings (H1-H3), images and links in document order
- Open Graph tags and JSON-LD structured data
- Word count, completeness score and content hash
"""

import asyncio
import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass, field, asdict
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.core.errors import NetworkError, ParseError
from app.services.url_normalizer import bare_hostname, is_same_site

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
SKIPPED_HREF_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class SeoData:
    url: str
    final_url: str
    status_code: int
    content_type: str = ""
    response_time_ms: int = 0
    content_length: int = 0
    redirect_chain: list[dict] = field(default_factory=list)

    title: str = ""
    meta_description: str = ""
    meta_keywords: str = ""
    meta_robots: str = ""
    canonical_url: str = ""
    language: str = ""

    headings: list[dict] = field(default_factory=list)
    images: list[dict] = field(default_factory=list)
    links: list[dict] = field(default_factory=list)
    og_tags: dict = field(default_factory=dict)
    structured_data: list = field(default_factory=list)

    word_count: int = 0
    content_hash: str = ""
    completeness_score: float = 0.0

    http_headers: dict = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def is_html(self) -> bool:
        return any(t in self.content_type.lower() for t in HTML_CONTENT_TYPES)

    @property
    def internal_links(self) -> list[dict]:
        return [link for link in self.links if not link["is_external"]]

    @property
    def external_links(self) -> list[dict]:
        return [link for link in self.links if link["is_external"]]

    def headings_at(self, level: int) -> list[str]:
        return [h["text"] for h in self.headings if h["level"] == level]

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_text(text: str) -> str:
    """Collapse whitespace and case so cosmetic differences don't change the hash."""
    return WHITESPACE_RE.sub(" ", text).strip().lower()


def content_hash(text: str) -> str:
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def completeness_score(data: SeoData) -> float:
    """Weighted presence of title, description, H1, canonical, alt text and links (0-1)."""
    score = 0.0
    if data.title:
        score += 1
    if data.meta_description:
        score += 1
    if data.headings_at(1):
        score += 1
    if data.canonical_url:
        score += 0.5
    if data.images:
        with_alt = sum(1 for img in data.images if img.get("alt"))
        score += with_alt / len(data.images)
    else:
        score += 1
    if data.internal_links:
        score += 0.5
    return round(score / 5.0, 3)


class HtmlExtractor:
    """Parses HTML into SeoData fields. Each section fails independently."""

    def __init__(self, site_domain: str):
        self.site_domain = bare_hostname(site_domain)

    def extract(self, html: str, data: SeoData) -> SeoData:
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as e:
            error = ParseError(f"document: {e}")
            logger.warning(f"Could not parse {data.url}: {error}")
            data.errors.append(str(error))
            return data

        base_url = data.final_url
        base_tag = soup.find("base", href=True)
        if base_tag:
            base_url = urljoin(data.final_url, base_tag["href"])

        sections = (
            ("meta", lambda: self._meta(soup, data)),
            ("headings", lambda: self._headings(soup, data)),
            ("images", lambda: self._images(soup, data, base_url)),
            ("links", lambda: self._links(soup, data, base_url)),
            ("open_graph", lambda: self._og_tags(soup, data)),
            ("structured_data", lambda: self._structured_data(soup, data)),
            ("text", lambda: self._text(soup, data)),
        )
        for name, step in sections:
            try:
                step()
            except Exception as e:
                error = ParseError(f"{name}: {e}")
                logger.warning(f"Partial extraction for {data.url}: {error}")
                data.errors.append(str(error))

        data.completeness_score = completeness_score(data)
        return data

    @staticmethod
    def _meta_content(soup: BeautifulSoup, name: str) -> str:
        tag = soup.find("meta", attrs={"name": re.compile(f"^{name}$", re.IGNORECASE)})
        return (tag.get("content") or "").strip() if tag else ""

    def _meta(self, soup: BeautifulSoup, data: SeoData):
        title_tag = soup.find("title")
        if title_tag:
            data.title = title_tag.get_text(strip=True)

        data.meta_description = self._meta_content(soup, "description")
        data.meta_keywords = self._meta_content(soup, "keywords")
        data.meta_robots = self._meta_content(soup, "robots")

        canonical_tag = soup.find("link", rel="canonical", href=True)
        if canonical_tag:
            data.canonical_url = urljoin(data.final_url, canonical_tag["href"].strip())

        html_tag = soup.find("html")
        data.language = (html_tag.get("lang") or "").strip() if html_tag else ""
        if not data.language:
            lang_meta = soup.find("meta", attrs={"http-equiv": re.compile("^content-language$", re.IGNORECASE)})
            if lang_meta:
                data.language = (lang_meta.get("content") or "").strip()

    def _headings(self, soup: BeautifulSoup, data: SeoData):
        for tag in soup.find_all(["h1", "h2", "h3"]):
            text = tag.get_text(" ", strip=True)
            if text:
                data.headings.append({"level": int(tag.name[1]), "text": text[:1000]})

    def _images(self, soup: BeautifulSoup, data: SeoData, base_url: str):
        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src") or ""
            if not src.strip() or src.startswith("data:"):
                continue
            data.images.append({
                "src": urljoin(base_url, src.strip()),
                "alt": img.get("alt"),
                "title": img.get("title"),
                "width": img.get("width"),
                "height": img.get("height"),
            })

    def _links(self, soup: BeautifulSoup, data: SeoData, base_url: str):
        for a in soup.find_all("a", href=True):
            href = a["href"].strip()
            if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
                continue

            full_url = urljoin(base_url, href)
            if urlparse(full_url).scheme not in ("http", "https"):
                continue

            rel = a.get("rel") or []
            if isinstance(rel, list):
                rel = " ".join(rel)

            data.links.append({
                "href": full_url,
                "text": a.get_text(" ", strip=True)[:500],
                "rel": rel or None,
                "is_external": not is_same_site(full_url, self.site_domain),
            })

    def _og_tags(self, soup: BeautifulSoup, data: SeoData):
        for meta in soup.find_all("meta", property=re.compile(r"^og:")):
            key = meta.get("property", "")[3:]
            if key in ("title", "description", "image", "type", "url") and key not in data.og_tags:
                data.og_tags[key] = meta.get("content", "")

    def _structured_data(self, soup: BeautifulSoup, data: SeoData):
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                block = json.loads(script.string or "")
            except (json.JSONDecodeError, TypeError):
                data.errors.append(str(ParseError("structured_data: invalid JSON-LD block")))
                continue
            if isinstance(block, list):
                data.structured_data.extend(block)
            else:
                data.structured_data.append(block)

    def _text(self, soup: BeautifulSoup, data: SeoData):
        for tag in soup(["script", "style", "noscript", "template"]):
            tag.decompose()
        body = soup.body or soup
        text = body.get_text(separator=" ", strip=True)
        data.word_count = len(text.split())
        data.content_hash = content_hash(text) if text else ""


class PageFetcher:
    """HTTP GET with a time/size budget and a recorded redirect chain."""

    def __init__(
        self,
        user_agent: str | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
        max_redirects: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent or settings.CRAWLER_USER_AGENT
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.max_bytes = max_bytes or settings.FETCH_MAX_BYTES
        self.max_redirects = max_redirects if max_redirects is not None else settings.FETCH_MAX_REDIRECTS
        self.transport = transport

    async def fetch(self, url: str, site_domain: str | None = None) -> SeoData:
        """Fetch and extract ``url``.

        Raises NetworkError on DNS/connection/timeout failures, including a
        page that takes longer than ``timeout`` overall across redirects and a
        slowly streamed body. Any HTTP status, including 4xx/5xx, is returned
        as data.
        """
        try:
            return await asyncio.wait_for(self._fetch(url, site_domain or bare_hostname(url)), self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Fetch of {url} exceeded {self.timeout}s")
            raise NetworkError(url, "timeout") from e

    async def _fetch(self, url: str, site_domain: str) -> SeoData:
        chain: list[dict] = []
        current = url
        start_time = time.time()

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        ) as client:
            for _ in range(self.max_redirects + 1):
                try:
                    async with client.stream("GET", current) as response:
                        if response.is_redirect:
                            chain.append({"url": current, "status_code": response.status_code})
                            current = urljoin(current, response.headers["location"])
                            continue

                        body, truncated = await self._read_body(response)
                        data = SeoData(
                            url=url,
                            final_url=str(response.url),
                            status_code=response.status_code,
                            content_type=response.headers.get("content-type", ""),
                            response_time_ms=int((time.time() - start_time) * 1000),
                            content_length=len(body),
                            redirect_chain=chain,
                            http_headers={k.lower(): v for k, v in response.headers.items()},
                        )
                        if truncated:
                            data.errors.append(f"Body truncated at {self.max_bytes} bytes")
                        if data.is_html and body:
                            html = body.decode(response.encoding or "utf-8", errors="replace")
                            HtmlExtractor(site_domain).extract(html, data)
                        logger.debug(f"Fetched {url} -> {data.final_url} ({data.status_code})")
                        return data
                except httpx.TimeoutException as e:
                    raise NetworkError(current, "timeout") from e
                except httpx.HTTPError as e:
                    raise NetworkError(current, str(e) or type(e).__name__) from e

        logger.warning(f"Too many redirects for {url}")
        last = chain[-1] if chain else {"status_code": 0}
        return SeoData(
            url=url,
            final_url=current,
            status_code=last["status_code"],
            response_time_ms=int((time.time() - start_time) * 1000),
            redirect_chain=chain,
            errors=[f"Too many redirects (>{self.max_redirects})"],
        )

    async def _read_body(self, response: httpx.Response) -> tuple[bytes, bool]:
        chunks = []
        size = 0
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
            size += len(chunk)
            if size >= self.max_bytes:
                return b"".join(chunks)[: self.max_bytes], True
        return b"".join(chunks), False
