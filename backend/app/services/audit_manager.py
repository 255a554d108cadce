"""
Audit Lifecycle Manager

State machine for audits and the URL frontier that feeds the crawl queue.

    pending -> in_progress -> completed | failed | stopped
    in_progress <-> pending_approval   (robots.txt unavailable / approve)
    in_progress <-> paused             (pause / resume)
    paused -> stopped                  (stop, or automatically after 14 days)

Every status write is a conditional UPDATE (see ``AuditService.transition``),
so concurrent commands, workers and sweeps cannot overwrite each other.
Invalid transitions never raise; they return an ``AuditActionResult`` with
``error="conflict"`` and leave the audit untouched.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.errors import ApprovalRequired
from app.models.audit import (
    Audit,
    AuditLogCategory,
    AuditStatus,
    RUNNING_STATUSES,
    TERMINAL_STATUSES,
)
from app.models.base import utcnow
from app.models.project import Project
from app.services.audit_logs import add_audit_log, clear_audit_logs
from app.services.audit_service import AuditService
from app.services.crawl_queue import CrawlQueue
from app.services.crawl_store import count_crawl_results, crawled_urls, internal_link_frontier
from app.services.domain_service import DomainService, cached_sitemap_urls
from app.services.fetcher import SeoData
from app.services.robots import (
    RobotsGate,
    RuleSet,
    effective_crawl_delay,
    parse_robots_txt,
)
from app.services.url_normalizer import (
    is_crawlable_page,
    is_root_url,
    is_same_site,
    is_sitemap_url,
    normalize_url,
)

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = tuple(s for s in AuditStatus if s not in TERMINAL_STATUSES)

# Re-read the audit status this often while enqueuing a large seed set.
STATUS_CHECK_INTERVAL = 50

# Parsed robots.txt rule sets kept per (domain, fetched_at).
RULES_CACHE_SIZE = 256


@dataclass
class AuditActionResult:
    """Outcome of a lifecycle operation, detailed enough for a UI to explain it."""

    success: bool
    audit_id: str | None
    status: str | None = None
    message: str = ""
    error: str | None = None  # None | "conflict" | "not_found" | "failed"
    pages_crawled: int = 0
    pages_total: int = 0
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CrawlPolicy:
    """What the crawler may fetch for one audit, and how fast."""

    rules: RuleSet
    crawl_delay: float
    domain_id: UUID | None = None


def _not_found(audit_id) -> AuditActionResult:
    return AuditActionResult(
        success=False,
        audit_id=str(audit_id) if audit_id else None,
        message="Audit not found",
        error="not_found",
    )


class AuditLifecycleManager:
    """Exposed audit operations plus frontier expansion used by crawl workers."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: CrawlQueue,
        robots: RobotsGate | None = None,
        paused_ttl_days: int | None = None,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.robots = robots or RobotsGate()
        self.paused_ttl_days = paused_ttl_days if paused_ttl_days is not None else settings.PAUSED_AUDIT_TTL_DAYS
        self._rules_cache: OrderedDict[tuple, RuleSet] = OrderedDict()

    async def _result(
        self,
        session: AsyncSession,
        audit_id: UUID,
        success: bool,
        message: str,
        error: str | None = None,
        details: dict | None = None,
    ) -> AuditActionResult:
        """Build a result from the audit's current row and live page count."""
        audit = await AuditService(session).get_by_id(audit_id)
        if audit is None:
            return _not_found(audit_id)
        return AuditActionResult(
            success=success,
            audit_id=str(audit.id),
            status=audit.status.value,
            message=message,
            error=error,
            pages_crawled=await count_crawl_results(session, audit.id),
            pages_total=audit.pages_total,
            details=details or {},
        )

    # ------------------------------------------------------------------
    # Start / setup / approve
    # ------------------------------------------------------------------

    async def start_audit(
        self,
        audit_id: UUID,
        seed_urls: list[str] | None = None,
        skip_robots_check: bool | None = None,
        defer_setup: bool = False,
    ) -> AuditActionResult:
        """Mark the audit in_progress, then resolve robots/sitemaps and enqueue seeds.

        The status is written before any network I/O. With ``defer_setup``
        the caller is responsible for running ``setup_crawl`` (e.g. as a
        background task).
        """
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)

            if audit.status == AuditStatus.PAUSED:
                return await self._result(
                    session, audit.id, False, "Audit is paused; resume it instead of starting", "conflict"
                )
            if audit.status in RUNNING_STATUSES or audit.status in TERMINAL_STATUSES:
                return await self._result(
                    session, audit.id, False, f"Cannot start an audit that is {audit.status.value}", "conflict"
                )

            values = {
                "status": AuditStatus.IN_PROGRESS,
                "started_at": utcnow(),
                "paused_at": None,
                "completed_at": None,
                "error_message": None,
            }
            if seed_urls is not None:
                values["seed_urls"] = list(dict.fromkeys(normalize_url(u) for u in seed_urls if u))
            if skip_robots_check is not None:
                values["skip_robots_check"] = bool(skip_robots_check)

            if not await service.transition(audit.id, (AuditStatus.PENDING, AuditStatus.FAILED), **values):
                await session.rollback()
                return await self._result(
                    session, audit.id, False, "Audit was started by another request", "conflict"
                )

            await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Audit started", {
                "seed_urls": values.get("seed_urls", audit.seed_urls or []),
                "skip_robots_check": values.get("skip_robots_check", audit.skip_robots_check),
            })
            await session.commit()
            # a restart from failed must be able to re-queue every URL
            await self.queue.clear_finished(str(audit.id))
            await self.queue.clear_visited(str(audit.id))
            logger.info(f"Audit {audit.id} started")

            if defer_setup:
                return await self._result(session, audit.id, True, "Audit started; crawl setup scheduled")

        return await self.setup_crawl(audit_id)

    async def approve_audit(self, audit_id: UUID, defer_setup: bool = False) -> AuditActionResult:
        """Continue a pending_approval audit without robots.txt."""
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            if audit.status != AuditStatus.PENDING_APPROVAL:
                return await self._result(
                    session,
                    audit.id,
                    False,
                    f"Only audits awaiting approval can be approved (audit is {audit.status.value})",
                    "conflict",
                )

            if not await service.transition(
                audit.id,
                (AuditStatus.PENDING_APPROVAL,),
                status=AuditStatus.IN_PROGRESS,
                skip_robots_check=True,
            ):
                await session.rollback()
                return await self._result(session, audit.id, False, "Audit changed state concurrently", "conflict")

            await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Crawl approved without robots.txt")
            await session.commit()
            logger.info(f"Audit {audit.id} approved without robots.txt")

            if defer_setup:
                return await self._result(session, audit.id, True, "Audit approved; crawl setup scheduled")

        return await self.setup_crawl(audit_id)

    async def setup_crawl(self, audit_id: UUID) -> AuditActionResult:
        """Resolve robots.txt and sitemaps, cache them, and enqueue the seed set.

        Only acts on in_progress audits. ApprovalRequired moves the audit to
        pending_approval; any other failure moves it to failed.
        """
        async with self.session_factory() as session:
            audit = await AuditService(session).get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            if audit.status != AuditStatus.IN_PROGRESS:
                return await self._result(
                    session, audit.id, False, f"Audit is {audit.status.value}; setup skipped", "conflict"
                )
            audit_uuid = audit.id
            host = audit.project.domain
            base_url = audit.project.base_url
            skip_robots = audit.skip_robots_check
            seed_urls = list(audit.seed_urls or [])

        try:
            if skip_robots:
                robots = None
                rules = RuleSet()
                declared = []
            else:
                robots = await self.robots.fetch_robots(host, base_url)
                rules = robots.rules
                declared = robots.sitemaps
            documents, sitemap_urls = await self.robots.discover_sitemaps(host, base_url, declared)
        except ApprovalRequired as e:
            return await self._require_approval(audit_uuid, e)
        except Exception as e:
            logger.exception(f"Crawl setup failed for audit {audit_uuid}")
            return await self._fail(audit_uuid, str(e) or type(e).__name__)

        try:
            async with self.session_factory() as session:
                domain = await DomainService(session).upsert(host, base_url, robots, documents)
                policy = CrawlPolicy(
                    rules=rules,
                    crawl_delay=robots.crawl_delay if robots else effective_crawl_delay(None),
                    domain_id=domain.id,
                )
                await session.commit()

                candidates = self._seed_candidates(seed_urls, sitemap_urls, base_url)
                await add_audit_log(session, audit_uuid, AuditLogCategory.SETUP, "Seed URLs resolved", {
                    "robots_found": bool(robots and robots.found),
                    "robots_url": robots.robots_url if robots else None,
                    "crawl_delay": policy.crawl_delay,
                    "sitemaps": [doc.url for doc in documents],
                    "sitemap_urls": len(sitemap_urls),
                    "seeds": len(candidates),
                })
                queued = await self._enqueue_candidates(session, audit_uuid, host, candidates, policy)
                await self._finish_enqueue(session, audit_uuid)
                await session.commit()
                return await self._result(
                    session, audit_uuid, True, f"Crawl started with {queued} queued URLs", details={"queued": queued}
                )
        except Exception as e:
            logger.exception(f"Enqueuing seeds failed for audit {audit_uuid}")
            return await self._fail(audit_uuid, str(e) or type(e).__name__)

    async def _require_approval(self, audit_id: UUID, error: ApprovalRequired) -> AuditActionResult:
        async with self.session_factory() as session:
            changed = await AuditService(session).transition(
                audit_id, (AuditStatus.IN_PROGRESS,), status=AuditStatus.PENDING_APPROVAL
            )
            if not changed:
                await session.rollback()
                return await self._result(session, audit_id, False, "Audit changed state during setup", "conflict")
            await add_audit_log(
                session,
                audit_id,
                AuditLogCategory.ERROR,
                f"robots.txt unavailable for {error.domain}; approval required",
                {"attempts": error.attempts},
            )
            await session.commit()
            logger.warning(f"Audit {audit_id} needs approval: {error}")
            return await self._result(
                session,
                audit_id,
                True,
                "robots.txt could not be fetched; approve the audit to crawl without it",
                details={"approval_required": True, "attempts": error.attempts},
            )

    async def _fail(self, audit_id: UUID, reason: str) -> AuditActionResult:
        async with self.session_factory() as session:
            await AuditService(session).transition(
                audit_id, (AuditStatus.IN_PROGRESS,), status=AuditStatus.FAILED, error_message=reason[:2000]
            )
            await add_audit_log(session, audit_id, AuditLogCategory.ERROR, f"Crawl setup failed: {reason}")
            await session.commit()
            return await self._result(session, audit_id, False, f"Crawl setup failed: {reason}", "failed")

    # ------------------------------------------------------------------
    # Pause / resume / stop
    # ------------------------------------------------------------------

    async def pause_audit(self, audit_id: UUID) -> AuditActionResult:
        """Stop handing out the audit's jobs. Active jobs finish but are not persisted."""
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            if audit.status != AuditStatus.IN_PROGRESS:
                return await self._result(
                    session, audit.id, False, f"Cannot pause an audit that is {audit.status.value}", "conflict"
                )

            crawled = await count_crawl_results(session, audit.id)
            if not await service.transition(
                audit.id,
                (AuditStatus.IN_PROGRESS,),
                status=AuditStatus.PAUSED,
                paused_at=utcnow(),
                pages_crawled=crawled,
            ):
                await session.rollback()
                return await self._result(session, audit.id, False, "Audit changed state concurrently", "conflict")
            await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Audit paused")
            await session.commit()

            report = await self.queue.pause(str(audit.id))
            logger.info(f"Audit {audit.id} paused")
            return await self._result(
                session,
                audit.id,
                True,
                "Audit paused",
                details={"removed_jobs": report.removed, "active_jobs": report.active_skipped},
            )

    async def resume_audit(self, audit_id: UUID) -> AuditActionResult:
        """Return a paused audit to in_progress and re-enqueue its remaining frontier."""
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            if audit.status != AuditStatus.PAUSED:
                return await self._result(
                    session, audit.id, False, f"Cannot resume an audit that is {audit.status.value}", "conflict"
                )
            if not await service.transition(
                audit.id, (AuditStatus.PAUSED,), status=AuditStatus.IN_PROGRESS, paused_at=None
            ):
                await session.rollback()
                return await self._result(session, audit.id, False, "Audit changed state concurrently", "conflict")
            await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Audit resumed")
            await session.commit()

        async with self.session_factory() as session:
            audit = await AuditService(session).get_by_id(audit_id)
            policy = await self.crawl_policy(session, audit.project, audit)
            queued = await self._rebuild_frontier(session, audit, policy)
            await self._finish_enqueue(session, audit.id)
            await session.commit()
            logger.info(f"Audit {audit.id} resumed with {queued} queued URLs")
            return await self._result(
                session, audit.id, True, f"Audit resumed with {queued} queued URLs", details={"queued": queued}
            )

    async def _rebuild_frontier(self, session: AsyncSession, audit: Audit, policy: CrawlPolicy) -> int:
        """Re-derive the uncrawled frontier: seeds plus internal links of crawled pages."""
        audit_key = str(audit.id)
        await self.queue.clear_finished(audit_key)
        await self.queue.clear_visited(audit_key)
        for url in await crawled_urls(session, audit.id):
            await self.queue.mark_visited(audit_key, url)
        for url in await self.queue.outstanding_urls(audit_key):
            await self.queue.mark_visited(audit_key, url)

        project = audit.project
        domain = await DomainService(session).get_by_host(project.domain)
        candidates = self._seed_candidates(audit.seed_urls or [], cached_sitemap_urls(domain), project.base_url)
        candidates.extend(await internal_link_frontier(session, audit.id))
        return await self._enqueue_candidates(session, audit.id, project.domain, candidates, policy)

    async def stop_audit(self, audit_id: UUID) -> AuditActionResult:
        """Stop from any non-terminal state and drain the audit's jobs."""
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            if audit.status in TERMINAL_STATUSES:
                return await self._result(
                    session, audit.id, False, f"Audit is already {audit.status.value}", "conflict"
                )

            crawled = await count_crawl_results(session, audit.id)
            if not await service.transition(
                audit.id,
                NON_TERMINAL_STATUSES,
                status=AuditStatus.STOPPED,
                pages_crawled=crawled,
                completed_at=utcnow(),
            ):
                await session.rollback()
                return await self._result(session, audit.id, False, "Audit changed state concurrently", "conflict")
            await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Audit stopped", {"pages_crawled": crawled})
            await session.commit()

            report = await self.queue.stop(str(audit.id))
            logger.info(f"Audit {audit.id} stopped at {crawled} pages")
            return await self._result(
                session,
                audit.id,
                True,
                "Audit stopped",
                details={"removed_jobs": report.removed, "removed_by_state": report.removed_by_state},
            )

    async def force_stop(self, audit_id: UUID | str | None = None) -> AuditActionResult:
        """Drain queued jobs for one audit (or every audit) even if the audit row is gone."""
        report = await self.queue.force_stop(str(audit_id) if audit_id else None)
        details = {
            "removed_jobs": report.removed,
            "removed_by_state": report.removed_by_state,
            "active_jobs": report.active_skipped,
        }
        if audit_id is None:
            details["remaining"] = (await self.queue.counts()).to_dict()
            return AuditActionResult(
                success=True,
                audit_id=None,
                message=f"Removed {report.removed} queued jobs for all audits",
                details=details,
            )

        details["remaining"] = (await self.queue.counts(str(audit_id))).to_dict()
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None:
                return AuditActionResult(
                    success=True,
                    audit_id=str(audit_id),
                    message=f"Audit not found; removed {report.removed} queued jobs",
                    details=details,
                )

            if audit.status in (AuditStatus.IN_PROGRESS, AuditStatus.PAUSED, AuditStatus.PENDING_APPROVAL):
                crawled = await count_crawl_results(session, audit.id)
                await service.transition(
                    audit.id,
                    (AuditStatus.IN_PROGRESS, AuditStatus.PAUSED, AuditStatus.PENDING_APPROVAL),
                    status=AuditStatus.STOPPED,
                    pages_crawled=crawled,
                    completed_at=utcnow(),
                )
                await add_audit_log(session, audit.id, AuditLogCategory.SETUP, "Audit force-stopped")
                await session.commit()
                logger.info(f"Audit {audit.id} force-stopped")

            return await self._result(
                session, audit.id, True, f"Removed {report.removed} queued jobs", details=details
            )

    # ------------------------------------------------------------------
    # Sweeps and diagnostics
    # ------------------------------------------------------------------

    async def run_auto_stop_paused_sweep(self, now: datetime | None = None) -> dict:
        """Stop audits paused for longer than the TTL and discard their logs. Irreversible."""
        now = now or utcnow()
        cutoff = now - timedelta(days=self.paused_ttl_days)
        stopped: list[str] = []

        async with self.session_factory() as session:
            service = AuditService(session)
            result = await session.execute(
                select(Audit.id).where(
                    Audit.status == AuditStatus.PAUSED,
                    func.coalesce(Audit.paused_at, Audit.started_at, Audit.updated_at) <= cutoff,
                )
            )
            for audit_id in result.scalars().all():
                crawled = await count_crawl_results(session, audit_id)
                if await service.transition(
                    audit_id,
                    (AuditStatus.PAUSED,),
                    status=AuditStatus.STOPPED,
                    pages_crawled=crawled,
                    completed_at=now,
                ):
                    await clear_audit_logs(session, audit_id)
                    stopped.append(str(audit_id))
            await session.commit()

        for audit_id in stopped:
            await self.queue.stop(audit_id)
        logger.info(f"Auto-stop sweep stopped {len(stopped)} paused audits")
        return {"stopped": len(stopped), "audit_ids": stopped}

    async def get_queue_diagnostics(self, audit_id: UUID) -> AuditActionResult:
        async with self.session_factory() as session:
            audit = await AuditService(session).get_by_id(audit_id)
            if audit is None:
                return _not_found(audit_id)
            key = str(audit.id)
            details = {
                "status": audit.status.value,
                "pages_crawled": await count_crawl_results(session, audit.id),
                "pages_total": audit.pages_total,
                "queue": (await self.queue.counts()).to_dict(),
                "audit_queue": (await self.queue.counts(key)).to_dict(),
                "visited": await self.queue.visited_count(key),
            }
            return await self._result(session, audit.id, True, "Queue diagnostics", details=details)

    # ------------------------------------------------------------------
    # Frontier
    # ------------------------------------------------------------------

    async def crawl_policy(self, session: AsyncSession, project: Project, audit: Audit) -> CrawlPolicy:
        """Robots rules and crawl delay from the Domain cache."""
        domain = await DomainService(session).get_by_host(project.domain)
        if domain is None:
            return CrawlPolicy(rules=RuleSet(), crawl_delay=effective_crawl_delay(None))

        if audit.skip_robots_check or not domain.robots_txt_content:
            rules = RuleSet()
        else:
            cache_key = (domain.domain, domain.robots_fetched_at)
            rules = self._rules_cache.get(cache_key)
            if rules is None:
                rules = parse_robots_txt(domain.robots_txt_content, self.robots.user_agent)
                self._rules_cache[cache_key] = rules
                while len(self._rules_cache) > RULES_CACHE_SIZE:
                    self._rules_cache.popitem(last=False)
            else:
                self._rules_cache.move_to_end(cache_key)
        delay = domain.crawl_delay if domain.crawl_delay is not None else effective_crawl_delay(None)
        return CrawlPolicy(rules=rules, crawl_delay=delay, domain_id=domain.id)

    async def expand_frontier(
        self,
        session: AsyncSession,
        audit: Audit,
        data: SeoData,
        depth: int,
        policy: CrawlPolicy,
    ) -> int:
        """Enqueue the same-site links of a freshly crawled page."""
        if data.final_url and normalize_url(data.final_url) != normalize_url(data.url):
            await self.queue.mark_visited(str(audit.id), data.final_url)

        base = data.final_url or data.url
        candidates = [(normalize_url(link["href"], base), depth + 1) for link in data.internal_links]
        return await self._enqueue_candidates(
            session,
            audit.id,
            audit.project.domain,
            candidates,
            policy,
            limit=settings.MAX_LINKS_PER_PAGE,
        )

    @staticmethod
    def _seed_candidates(
        seed_urls: list[str],
        sitemap_urls: list[str],
        base_url: str,
    ) -> list[tuple[str, int]]:
        if seed_urls:
            return [(url, 0) for url in seed_urls]
        if sitemap_urls:
            return [(url, 0 if is_root_url(url) else 1) for url in sitemap_urls]
        return [(base_url, 0)]

    async def _enqueue_candidates(
        self,
        session: AsyncSession,
        audit_id: UUID,
        host: str,
        candidates: Iterable[tuple[str, int]],
        policy: CrawlPolicy,
        limit: int | None = None,
    ) -> int:
        """Filter candidates and enqueue the new ones; returns the number queued.

        Logs are staged on ``session``; the caller commits.
        """
        audit_key = str(audit_id)
        service = AuditService(session)
        queued = 0

        for i, (url, depth) in enumerate(candidates):
            if limit is not None and queued >= limit:
                break
            if i and i % STATUS_CHECK_INTERVAL == 0:
                if await service.get_status(audit_id) != AuditStatus.IN_PROGRESS:
                    logger.info(f"Audit {audit_key} left in_progress while enqueuing; stopping")
                    break

            normalized = normalize_url(url)
            if depth > settings.MAX_CRAWL_DEPTH or not is_same_site(normalized, host):
                continue
            if not is_crawlable_page(normalized):
                if is_sitemap_url(normalized):
                    await add_audit_log(session, audit_id, AuditLogCategory.SKIPPED, f"Sitemap URL not crawled: {normalized}")
                continue
            if not policy.rules.is_allowed(normalized):
                await add_audit_log(session, audit_id, AuditLogCategory.FILTERING, f"Blocked by robots.txt: {normalized}")
                continue
            if await self.queue.visited_count(audit_key) >= settings.MAX_PAGES_PER_CRAWL:
                await add_audit_log(
                    session, audit_id, AuditLogCategory.FILTERING,
                    f"Page limit of {settings.MAX_PAGES_PER_CRAWL} reached",
                )
                break
            if not await self.queue.mark_visited(audit_key, normalized):
                continue

            job = await self.queue.enqueue_rate_limited(
                normalized, audit_key, policy.crawl_delay, priority=depth, depth=depth
            )
            if job:
                queued += 1
                await add_audit_log(session, audit_id, AuditLogCategory.QUEUED, normalized, {"depth": depth})

        return queued

    async def _finish_enqueue(self, session: AsyncSession, audit_id: UUID) -> None:
        """Refresh pages_total, or drain the queue if the audit was paused/stopped meanwhile."""
        service = AuditService(session)
        audit_key = str(audit_id)
        status = await service.get_status(audit_id)

        if status == AuditStatus.IN_PROGRESS:
            crawled = await count_crawl_results(session, audit_id)
            await service.transition(
                audit_id,
                (AuditStatus.IN_PROGRESS,),
                pages_crawled=crawled,
                pages_total=crawled + await self.queue.queued_count(audit_key),
            )
        elif status == AuditStatus.PAUSED:
            await self.queue.pause(audit_key)
        else:
            await self.queue.stop(audit_key)
