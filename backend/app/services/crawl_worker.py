"""
Crawl worker pool.

Workers claim jobs from the crawl queue, fetch the page outside any database
session, then persist and expand the frontier only if the audit is still
in_progress. That status check right before writing is the only gate
between a stop/pause and an in-flight fetch.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.core.errors import NetworkError
from app.models.audit import AuditLogCategory, AuditStatus
from app.services.audit_logs import add_audit_log
from app.services.audit_manager import AuditLifecycleManager
from app.services.audit_service import AuditService
from app.services.backlinks import record_backlinks, record_inbound_backlinks
from app.services.crawl_queue import CrawlJob, CrawlQueue
from app.services.crawl_store import count_crawl_results, save_crawl_result
from app.services.fetcher import PageFetcher

logger = logging.getLogger(__name__)


class CrawlJobProcessor:
    """Runs one crawl job: policy check, fetch, persist, expand."""

    PERSISTED = "persisted"
    DISCARDED = "discarded"
    SKIPPED = "skipped"

    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: CrawlQueue,
        manager: AuditLifecycleManager,
        fetcher: PageFetcher | None = None,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.manager = manager
        self.fetcher = fetcher or PageFetcher()

    async def process(self, job: CrawlJob) -> str:
        """Process ``job``. NetworkError propagates so the queue can retry it."""
        async with self.session_factory() as session:
            audit = await AuditService(session).get_by_id(job.audit_id)
            if audit is None or audit.status != AuditStatus.IN_PROGRESS:
                logger.debug(f"Discarding {job.url}: audit {job.audit_id} is not running")
                return self.DISCARDED

            policy = await self.manager.crawl_policy(session, audit.project, audit)
            if not policy.rules.is_allowed(job.url):
                await add_audit_log(session, audit.id, AuditLogCategory.SKIPPED, f"Blocked by robots.txt: {job.url}")
                await session.commit()
                return self.SKIPPED
            site_domain = audit.project.domain

        data = await self.fetcher.fetch(job.url, site_domain=site_domain)

        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(job.audit_id)
            if audit is None or audit.status != AuditStatus.IN_PROGRESS:
                logger.info(f"Audit {job.audit_id} left in_progress during fetch of {job.url}; result dropped")
                return self.DISCARDED

            result = await save_crawl_result(
                session, audit.id, data, domain_id=policy.domain_id, depth=job.depth
            )
            await record_backlinks(session, result)
            await record_inbound_backlinks(session, result)
            queued = await self.manager.expand_frontier(session, audit, data, job.depth, policy)
            await add_audit_log(session, audit.id, AuditLogCategory.CRAWLED, job.url, {
                "status_code": data.status_code,
                "depth": job.depth,
                "links_queued": queued,
                "errors": data.errors,
            })

            crawled = await count_crawl_results(session, audit.id)
            # this job is still active in the queue
            pending = max(0, await self.queue.queued_count(job.audit_id) - 1)
            await service.transition(
                audit.id,
                (AuditStatus.IN_PROGRESS,),
                pages_crawled=crawled,
                pages_total=crawled + pending,
            )
            await session.commit()

        logger.info(f"Crawled {job.url} ({data.status_code}), queued {queued} links")
        return self.PERSISTED


class CrawlWorkerPool:
    """Asyncio worker pool with a global and a per-domain concurrency limit."""

    def __init__(
        self,
        queue: CrawlQueue,
        processor: CrawlJobProcessor,
        concurrency: int | None = None,
        per_domain: int | None = None,
        poll_interval: float | None = None,
    ):
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency or settings.QUEUE_CONCURRENCY
        self.per_domain = per_domain or settings.QUEUE_PER_DOMAIN_CONCURRENCY
        self.poll_interval = poll_interval if poll_interval is not None else settings.QUEUE_POLL_INTERVAL_SECONDS
        # domain -> [semaphore, holders]; entries are dropped once nobody holds or waits on them
        self._domain_limits: dict[str, list] = {}
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @asynccontextmanager
    async def _domain_slot(self, domain: str):
        entry = self._domain_limits.get(domain)
        if entry is None:
            entry = self._domain_limits[domain] = [asyncio.Semaphore(self.per_domain), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._domain_limits.pop(domain, None)

    async def run_job(self, job: CrawlJob) -> None:
        """Process a claimed job and record its outcome on the queue."""
        async with self._domain_slot(job.domain):
            try:
                outcome = await self.processor.process(job)
            except NetworkError as e:
                await self.queue.fail(job, str(e), retryable=True)
            except Exception as e:
                logger.error(f"Crawl job {job.id} failed: {e}", exc_info=True)
                await self.queue.fail(job, str(e) or type(e).__name__)
            else:
                if outcome == CrawlJobProcessor.DISCARDED:
                    await self.queue.discard(job)
                else:
                    await self.queue.complete(job)

    async def process_next(self) -> bool:
        """Claim and run one job; False when nothing is ready."""
        job = await self.queue.claim()
        if job is None:
            return False
        await self.run_job(job)
        return True

    async def run_until_idle(self, max_jobs: int | None = None) -> int:
        """Drain every ready job sequentially. Used by tests and one-shot runs."""
        processed = 0
        while max_jobs is None or processed < max_jobs:
            if not await self.process_next():
                break
            processed += 1
        return processed

    async def _worker(self, index: int) -> None:
        logger.debug(f"Crawl worker {index} started")
        while not self._stopping.is_set():
            try:
                worked = await self.process_next()
            except Exception as e:
                logger.error(f"Crawl worker {index} error: {e}", exc_info=True)
                worked = False
            if not worked:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        logger.debug(f"Crawl worker {index} stopped")

    def start(self) -> None:
        if self._tasks:
            return
        self._stopping.clear()
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.concurrency)]
        logger.info(f"Started {self.concurrency} crawl workers ({self.per_domain} per domain)")

    async def stop(self) -> None:
        """Let in-flight jobs finish, then return."""
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Crawl workers stopped")
