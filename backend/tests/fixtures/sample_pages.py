"""
Sample site fixtures for testing: pages, robots.txt, sitemaps and an
httpx transport that serves them.
"""
import httpx

from app.services.url_normalizer import normalize_url

# Well-formed page with every extracted element
PERFECT_PAGE_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Perfect SEO Page - Complete with All Elements</title>
    <meta name="description" content="A well optimized meta description for search results.">
    <meta name="keywords" content="seo, crawler">
    <meta name="robots" content="index, follow">
    <link rel="canonical" href="https://example.com/perfect-page">

    <!-- Open Graph -->
    <meta property="og:title" content="Perfect SEO Page">
    <meta property="og:description" content="Optimized for social sharing">
    <meta property="og:image" content="https://example.com/og-image.jpg">
    <meta property="og:type" content="website">

    <script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "WebPage", "name": "Perfect SEO Page"}
    </script>
</head>
<body>
    <h1>Perfect SEO Page</h1>
    <p>Plenty of readable content about search engine optimization.</p>
    <h2>Section One</h2>
    <h2>Section Two</h2>
    <h3>Details</h3>
    <img src="/images/hero.jpg" alt="Hero image" width="1200" height="600">
    <img src="/images/chart.png" alt="">
    <a href="/about">About Us</a>
    <a href="https://www.example.com/contact">Contact</a>
    <a href="https://partner.org/" rel="nofollow sponsored">Partner</a>
    <a href="mailto:hello@example.com">Mail</a>
    <a href="#top">Top</a>
</body>
</html>
"""

# Page without title, description, H1 or alt text
POOR_SEO_PAGE_HTML = """
<html>
<body>
    <p>Short page.</p>
    <img src="/images/a.png">
</body>
</html>
"""

# Broken structured data; extraction keeps going
BROKEN_JSONLD_HTML = """
<html><head><title>Broken</title>
<script type="application/ld+json">{not json</script>
</head><body><h1>Still parsed</h1></body></html>
"""


def page_html(title: str, links: list[str] | None = None, body: str | None = None) -> str:
    """Minimal page with a title, H1, a paragraph and links."""
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in (links or []))
    text = body if body is not None else f"Content of {title}."
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1><p>{text}</p>{anchors}</body></html>"
    )


ROBOTS_ALLOW_ALL = """
User-agent: *
Allow: /

Sitemap: https://example.com/sitemap.xml
"""

ROBOTS_WITH_PRIVATE = """
User-agent: *
Disallow: /private
Crawl-delay: 2

User-agent: SEOCrawlerBot
Disallow: /bot-only
Allow: /bot-only/public

Sitemap: https://example.com/sitemap.xml
"""


def sitemap_xml(urls: list[str]) -> str:
    entries = "".join(f"<url><loc>{u}</loc></url>" for u in urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'
    )


def sitemap_index_xml(sitemaps: list[str]) -> str:
    entries = "".join(f"<sitemap><loc>{u}</loc></sitemap>" for u in sitemaps)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</sitemapindex>'
    )


def site_transport(routes: dict, requests: list | None = None) -> httpx.MockTransport:
    """MockTransport serving ``routes`` keyed by URL.

    Values are an HTML string, an ``httpx.Response``, or an exception
    instance to raise. Unknown URLs return 404. Each request URL is
    appended to ``requests`` when given.
    """
    table = {normalize_url(url): value for url, value in routes.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if requests is not None:
            requests.append(url)
        value = table.get(normalize_url(url))
        if value is None:
            return httpx.Response(404, text="Not found")
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            # fresh copy so a route can be served more than once
            return httpx.Response(value.status_code, headers=value.headers, content=value.content)
        if url.endswith(".xml"):
            return httpx.Response(200, text=value, headers={"content-type": "application/xml"})
        if url.endswith(".txt"):
            return httpx.Response(200, text=value, headers={"content-type": "text/plain"})
        return httpx.Response(200, text=value, headers={"content-type": "text/html; charset=utf-8"})

    return httpx.MockTransport(handler)


def three_page_site() -> dict:
    """robots.txt allowing everything and a sitemap listing three pages."""
    pages = [
        "https://example.com/",
        "https://example.com/about",
        "https://example.com/services",
    ]
    return {
        "https://example.com/robots.txt": ROBOTS_ALLOW_ALL,
        "https://example.com/sitemap.xml": sitemap_xml(pages),
        "https://example.com/": page_html("Home", ["/about", "/services"]),
        "https://example.com/about": page_html("About", ["/", "/services"]),
        "https://example.com/services": page_html("Services", ["/"]),
    }
