"""
Wiring of the crawl engine's collaborators.

The API process keeps one runtime on ``app.state``. Celery tasks build a
fresh one per task (each task runs in its own event loop) and close it.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.services.audit_manager import AuditLifecycleManager
from app.services.completion import CompletionDetector, ReadyStateStore, create_ready_store
from app.services.crawl_queue import CrawlQueue, MemoryQueueBackend, QueueBackend, create_queue_backend
from app.services.crawl_worker import CrawlJobProcessor, CrawlWorkerPool
from app.services.fetcher import PageFetcher
from app.services.robots import RobotsGate

logger = logging.getLogger(__name__)

# Shared by everything in a single process when QUEUE_BACKEND=memory.
_memory_backend = MemoryQueueBackend()


@dataclass
class CrawlRuntime:
    session_factory: async_sessionmaker
    queue: CrawlQueue
    robots: RobotsGate
    fetcher: PageFetcher
    manager: AuditLifecycleManager
    detector: CompletionDetector
    ready_store: ReadyStateStore

    def processor(self) -> CrawlJobProcessor:
        return CrawlJobProcessor(self.session_factory, self.queue, self.manager, self.fetcher)

    def pool(self, concurrency: int | None = None, per_domain: int | None = None) -> CrawlWorkerPool:
        return CrawlWorkerPool(self.queue, self.processor(), concurrency=concurrency, per_domain=per_domain)

    async def close(self) -> None:
        await self.queue.close()
        await self.ready_store.close()


def build_runtime(
    session_factory: async_sessionmaker,
    backend: QueueBackend | None = None,
    ready_store: ReadyStateStore | None = None,
    clock: Callable[[], float] = time.time,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CrawlRuntime:
    if backend is None:
        backend = _memory_backend if settings.QUEUE_BACKEND.lower() == "memory" else create_queue_backend()
    ready_store = ready_store or create_ready_store()

    queue = CrawlQueue(backend, clock=clock)
    robots = RobotsGate(transport=transport)
    fetcher = PageFetcher(transport=transport)
    manager = AuditLifecycleManager(session_factory, queue, robots)
    detector = CompletionDetector(session_factory, queue, ready_store, clock=clock)
    logger.debug(f"Built crawl runtime (queue={type(backend).__name__}, ready={type(ready_store).__name__})")
    return CrawlRuntime(
        session_factory=session_factory,
        queue=queue,
        robots=robots,
        fetcher=fetcher,
        manager=manager,
        detector=detector,
        ready_store=ready_store,
    )
