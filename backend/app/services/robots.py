"""
Robots Gate

Fetches and parses robots.txt for a domain, answers allow/deny per URL and
discovers sitemap URLs. When robots.txt cannot be obtained at all the gate
raises ApprovalRequired instead of allowing the crawl.
"""

import gzip
import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.core.errors import ApprovalRequired
from app.services.url_normalizer import bare_hostname, is_same_site

logger = logging.getLogger(__name__)

DEFAULT_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")


@dataclass
class RobotsRule:
    path: str
    allow: bool
    pattern: re.Pattern = field(init=False, repr=False)

    def __post_init__(self):
        self.pattern = _compile_rule(self.path)

    @property
    def specificity(self) -> int:
        return len(self.path)


@dataclass
class RuleSet:
    """Directives of the robots.txt group that applies to our user agent."""
    rules: list[RobotsRule] = field(default_factory=list)
    crawl_delay: float | None = None
    sitemaps: list[str] = field(default_factory=list)

    def is_allowed(self, url: str) -> bool:
        """Longest matching rule wins; Allow wins ties; no match allows."""
        target = _path_of(url)
        best: RobotsRule | None = None
        for rule in self.rules:
            if not rule.pattern.match(target):
                continue
            if (
                best is None
                or rule.specificity > best.specificity
                or (rule.specificity == best.specificity and rule.allow and not best.allow)
            ):
                best = rule
        return True if best is None else best.allow


@dataclass
class RobotsResult:
    domain: str
    rules: RuleSet
    robots_url: str | None = None
    content: str | None = None
    found: bool = True
    crawl_delay: float = settings.DEFAULT_CRAWL_DELAY_SECONDS

    @property
    def sitemaps(self) -> list[str]:
        return self.rules.sitemaps


@dataclass
class SitemapDocument:
    url: str
    content: str
    is_index: bool = False
    locations: list[str] = field(default_factory=list)

    def to_cache(self) -> dict:
        return {"url": self.url, "content": self.content}


def _compile_rule(path: str) -> re.Pattern:
    anchored = path.endswith("$")
    if anchored:
        path = path[:-1]
    expr = ".*".join(re.escape(part) for part in path.split("*"))
    return re.compile(expr + ("$" if anchored else ""))


def _path_of(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme and not url.startswith("/"):
        return "/" + url
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


def _product_token(user_agent: str) -> str:
    return user_agent.split("/", 1)[0].strip().lower()


def parse_robots_txt(content: str, user_agent: str | None = None) -> RuleSet:
    """Parse robots.txt, keeping the group for ``user_agent`` (else ``*``)."""
    token = _product_token(user_agent or settings.CRAWLER_USER_AGENT)
    groups: list[tuple[list[str], list[RobotsRule], float | None]] = []
    sitemaps: list[str] = []

    agents: list[str] = []
    rules: list[RobotsRule] = []
    delay: float | None = None
    in_rules = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "sitemap":
            if value:
                sitemaps.append(value)
            continue

        if key == "user-agent":
            if in_rules:
                groups.append((agents, rules, delay))
                agents, rules, delay = [], [], None
                in_rules = False
            agents.append(value.lower())
        elif key in ("allow", "disallow"):
            in_rules = True
            if value:
                rules.append(RobotsRule(path=value, allow=key == "allow"))
        elif key == "crawl-delay":
            in_rules = True
            try:
                delay = float(value)
            except ValueError:
                logger.debug(f"Ignoring invalid crawl-delay: {value}")

    if agents:
        groups.append((agents, rules, delay))

    specific = [g for g in groups if any(a != "*" and a in token for a in g[0])]
    wildcard = [g for g in groups if "*" in g[0]]
    chosen = specific or wildcard

    ruleset = RuleSet(sitemaps=sitemaps)
    for _, group_rules, group_delay in chosen:
        ruleset.rules.extend(group_rules)
        if group_delay is not None:
            ruleset.crawl_delay = group_delay
    return ruleset


def effective_crawl_delay(ruleset: RuleSet | None) -> float:
    """Crawl-delay in seconds, defaulted and capped."""
    if ruleset is None or ruleset.crawl_delay is None:
        return settings.DEFAULT_CRAWL_DELAY_SECONDS
    return max(0.0, min(ruleset.crawl_delay, settings.MAX_CRAWL_DELAY_SECONDS))


def allow_all(domain: str) -> RobotsResult:
    return RobotsResult(domain=domain, rules=RuleSet(), found=False)


def parse_sitemap(content: str) -> tuple[bool, list[str]]:
    """Return (is_index, locations) for a sitemap or sitemap index."""
    soup = BeautifulSoup(content, "xml")
    if soup.find("sitemapindex"):
        entries = soup.find_all("sitemap")
        is_index = True
    else:
        entries = soup.find_all("url")
        is_index = False

    locations = []
    for entry in entries:
        loc = entry.find("loc")
        if loc and loc.get_text(strip=True):
            locations.append(loc.get_text(strip=True))
    return is_index, locations


class RobotsGate:
    """robots.txt and sitemap access for the crawler."""

    def __init__(
        self,
        user_agent: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent or settings.CRAWLER_USER_AGENT
        self.timeout = timeout if timeout is not None else settings.ROBOTS_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        )

    @staticmethod
    def candidate_robots_urls(domain: str, base_url: str | None = None) -> list[str]:
        """robots.txt locations to try: the base URL's origin first, then www/scheme variants."""
        host = bare_hostname(domain)
        candidates = []
        if base_url:
            parts = urlsplit(base_url)
            if parts.scheme and parts.netloc:
                candidates.append(f"{parts.scheme}://{parts.netloc.lower()}/robots.txt")
        for scheme in ("https", "http"):
            for prefix in ("", "www."):
                candidates.append(f"{scheme}://{prefix}{host}/robots.txt")
        return list(dict.fromkeys(candidates))

    async def fetch_robots(self, domain: str, base_url: str | None = None) -> RobotsResult:
        """Fetch robots.txt, trying every variant before giving up.

        A 4xx response means there is no robots.txt, which allows everything.
        Only when every variant fails at the network level or with 5xx is
        ApprovalRequired raised.
        """
        host = bare_hostname(domain)
        attempts: list[dict] = []
        missing_url: str | None = None

        async with self._client() as client:
            for robots_url in self.candidate_robots_urls(host, base_url):
                try:
                    response = await client.get(robots_url)
                except httpx.TimeoutException:
                    logger.warning(f"Timeout fetching {robots_url}")
                    attempts.append({"url": robots_url, "error": "timeout"})
                    continue
                except httpx.HTTPError as e:
                    logger.warning(f"Could not fetch {robots_url}: {e}")
                    attempts.append({"url": robots_url, "error": str(e) or type(e).__name__})
                    continue

                if response.status_code == 200:
                    content = response.text
                    rules = parse_robots_txt(content, self.user_agent)
                    logger.info(
                        f"Loaded robots.txt from {robots_url} "
                        f"({len(rules.rules)} rules, {len(rules.sitemaps)} sitemaps)"
                    )
                    return RobotsResult(
                        domain=host,
                        rules=rules,
                        robots_url=str(response.url),
                        content=content,
                        crawl_delay=effective_crawl_delay(rules),
                    )

                attempts.append({"url": robots_url, "status": response.status_code})
                if 400 <= response.status_code < 500 and missing_url is None:
                    missing_url = robots_url

        if missing_url:
            logger.info(f"No robots.txt for {host} ({missing_url}), allowing all")
            result = allow_all(host)
            result.robots_url = missing_url
            return result

        raise ApprovalRequired(host, attempts)

    async def fetch_sitemap(self, client: httpx.AsyncClient, url: str) -> SitemapDocument | None:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch sitemap {url}: {e}")
            return None
        if response.status_code != 200:
            logger.debug(f"Sitemap {url} returned {response.status_code}")
            return None

        body = response.content
        if url.endswith(".gz") and body[:2] == b"\x1f\x8b":
            body = gzip.decompress(body)
        content = body.decode(response.encoding or "utf-8", errors="replace")

        is_index, locations = parse_sitemap(content)
        return SitemapDocument(url=url, content=content, is_index=is_index, locations=locations)

    async def discover_sitemaps(
        self,
        domain: str,
        base_url: str,
        declared: list[str] | None = None,
    ) -> tuple[list[SitemapDocument], list[str]]:
        """Fetch sitemaps and return (documents, page URLs on this site).

        Sitemaps declared in robots.txt are used when present, otherwise the
        conventional locations. Index files are expanded one level.
        """
        parts = urlsplit(base_url)
        origin = f"{parts.scheme}://{parts.netloc}"
        roots = list(dict.fromkeys(declared or [])) or [origin + p for p in DEFAULT_SITEMAP_PATHS]

        documents: list[SitemapDocument] = []
        page_urls: list[str] = []
        seen_docs: set[str] = set()

        async with self._client() as client:
            for root_url in roots:
                if root_url in seen_docs:
                    continue
                seen_docs.add(root_url)
                doc = await self.fetch_sitemap(client, root_url)
                if doc is None:
                    continue
                documents.append(doc)

                if not doc.is_index:
                    page_urls.extend(doc.locations)
                    continue

                for child_url in doc.locations:
                    if child_url in seen_docs:
                        continue
                    seen_docs.add(child_url)
                    child = await self.fetch_sitemap(client, child_url)
                    if child is None:
                        continue
                    documents.append(child)
                    if child.is_index:
                        logger.debug(f"Not expanding nested sitemap index {child_url}")
                        continue
                    page_urls.extend(child.locations)

        on_site = [u for u in dict.fromkeys(page_urls) if is_same_site(u, domain)]
        logger.info(f"Discovered {len(on_site)} URLs in {len(documents)} sitemaps for {domain}")
        return documents, on_site
