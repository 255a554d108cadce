"""
URL Normalizer

Canonical string form used as the equality key for visited sets, sitemap
matching, homepage detection and backlink targets. Only the fragment, a
single trailing slash and the case of scheme and host are normalized; query
strings and path case are kept as-is.
"""

import hashlib
import re
from urllib.parse import urljoin, urlsplit, urlunsplit

SITEMAP_PATTERNS = [
    re.compile(r"/sitemap\.xml$", re.IGNORECASE),
    re.compile(r"/sitemap[^/]*\.xml$", re.IGNORECASE),
    re.compile(r"/sitemap/\d{4}/\d{2}/\d{2}", re.IGNORECASE),
    re.compile(r"/sitemaps?/.*", re.IGNORECASE),
    re.compile(r"sitemap\.xml\?", re.IGNORECASE),
    re.compile(r"/sitemap_index\.xml$", re.IGNORECASE),
    re.compile(r"/sitemapindex\.xml$", re.IGNORECASE),
]

EXCLUDED_PATH_PREFIXES = (
    "/admin",
    "/login",
    "/logout",
    "/register",
    "/api/",
    "/_next/",
    "/static/",
    "/assets/",
)

NON_PAGE_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".zip", ".gz", ".exe", ".dmg", ".css", ".js", ".xml", ".mp3", ".mp4",
)


def normalize_url(url: str, base: str | None = None) -> str:
    """Return the canonical form of ``url``, resolved against ``base``.

    Never raises: input that cannot be parsed as an absolute http(s) URL
    falls back to its stripped, lower-cased string.
    """
    raw = (url or "").strip()
    try:
        if base:
            raw = urljoin(base, raw)
        parts = urlsplit(raw)
        if not parts.scheme or not parts.netloc:
            return raw.lower()

        path = parts.path or "/"
        if len(path) > 1 and path.endswith("/"):
            path = path[:-1]

        return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))
    except ValueError:
        return raw.lower()


def bare_hostname(url_or_host: str) -> str:
    """Lower-cased host without ``www.`` and without port."""
    value = (url_or_host or "").strip().lower()
    if "://" in value:
        try:
            value = urlsplit(value).hostname or ""
        except ValueError:
            return ""
    else:
        value = value.split("/", 1)[0].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def is_same_site(url: str, domain: str) -> bool:
    """True when ``url`` is on ``domain`` or its ``www.`` twin."""
    host = bare_hostname(url)
    return bool(host) and host == bare_hostname(domain)


def is_root_url(url: str) -> bool:
    """True for the homepage of a host."""
    try:
        parts = urlsplit(normalize_url(url))
    except ValueError:
        return False
    return bool(parts.netloc) and parts.path == "/" and not parts.query


def is_sitemap_url(url: str) -> bool:
    lowered = (url or "").lower()
    try:
        path = urlsplit(lowered).path
    except ValueError:
        path = lowered
    return any(p.search(path) or p.search(lowered) for p in SITEMAP_PATTERNS)


def is_crawlable_page(url: str) -> bool:
    """Heuristic for "looks like a navigable HTML page"."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return False
    if is_sitemap_url(url):
        return False

    path = parts.path.lower()
    if any(path == prefix.rstrip("/") or path.startswith(prefix) for prefix in EXCLUDED_PATH_PREFIXES):
        return False
    return not path.endswith(NON_PAGE_EXTENSIONS)


def url_key(normalized_url: str) -> str:
    """Fixed-length key for a normalized URL."""
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()[:32]
