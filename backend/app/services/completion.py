"""
Completion Detector

Decides when an in-progress audit is actually done. An empty queue is not
enough: setup may still be enqueuing sitemap URLs. An audit is finalized
only after its (crawled, total) counts have looked complete and unchanged
for a continuous inactivity window.

The provisional-ready state sits behind ``ReadyStateStore``. The in-memory
store is lost on restart, which only restarts the window.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.models.audit import AuditStatus
from app.services.audit_logs import clear_audit_logs
from app.services.audit_service import AuditService
from app.services.crawl_queue import CrawlQueue
from app.services.crawl_store import count_crawl_results

logger = logging.getLogger(__name__)


@dataclass
class ReadyState:
    timestamp: float
    pages_total: int
    pages_crawled: int


class ReadyStateStore(ABC):
    """get/set/delete of provisional-ready state keyed by audit id."""

    @abstractmethod
    async def get(self, audit_id: str) -> ReadyState | None: ...

    @abstractmethod
    async def set(self, audit_id: str, state: ReadyState) -> None: ...

    @abstractmethod
    async def delete(self, audit_id: str) -> None: ...

    async def close(self) -> None:
        return None


class MemoryReadyStateStore(ReadyStateStore):
    def __init__(self):
        self._states: dict[str, ReadyState] = {}

    async def get(self, audit_id: str) -> ReadyState | None:
        return self._states.get(audit_id)

    async def set(self, audit_id: str, state: ReadyState) -> None:
        self._states[audit_id] = state

    async def delete(self, audit_id: str) -> None:
        self._states.pop(audit_id, None)


class RedisReadyStateStore(ReadyStateStore):
    """Ready states in one Redis hash; survives restarts and is shared by sweepers."""

    KEY = "completion:ready"

    def __init__(self, redis_url: str = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self._redis: redis.Redis | None = None

    async def get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def get(self, audit_id: str) -> ReadyState | None:
        r = await self.get_redis()
        raw = await r.hget(self.KEY, audit_id)
        return ReadyState(**json.loads(raw)) if raw else None

    async def set(self, audit_id: str, state: ReadyState) -> None:
        r = await self.get_redis()
        await r.hset(self.KEY, audit_id, json.dumps(asdict(state)))

    async def delete(self, audit_id: str) -> None:
        r = await self.get_redis()
        await r.hdel(self.KEY, audit_id)

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()
            self._redis = None


_memory_store = MemoryReadyStateStore()


def create_ready_store(kind: str | None = None) -> ReadyStateStore:
    kind = (kind or settings.READY_STATE_BACKEND).lower()
    if kind == "memory":
        return _memory_store
    if kind == "redis":
        return RedisReadyStateStore()
    raise ValueError(f"Unknown ready state backend: {kind}")


class CompletionDetector:
    """Periodic sweep finalizing in-progress audits. Safe to run concurrently with itself."""

    ACTIVE = "active"
    WAITING = "waiting"
    PROVISIONAL = "provisional"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: CrawlQueue,
        store: ReadyStateStore,
        clock: Callable[[], float] = time.time,
        inactivity_minutes: float | None = None,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.store = store
        self.clock = clock
        minutes = inactivity_minutes if inactivity_minutes is not None else settings.COMPLETION_INACTIVITY_MINUTES
        self.window_seconds = minutes * 60

    async def run_sweep(self) -> dict:
        """Check every in-progress audit; returns outcome per audit id."""
        async with self.session_factory() as session:
            audit_ids = await AuditService(session).list_ids_with_status(AuditStatus.IN_PROGRESS)

        outcomes: dict[str, str] = {}
        for audit_id in audit_ids:
            try:
                outcomes[str(audit_id)] = await self.check_audit(audit_id)
            except Exception as e:
                logger.error(f"Completion check failed for audit {audit_id}: {e}")
                outcomes[str(audit_id)] = "error"

        completed = sum(1 for o in outcomes.values() if o == self.COMPLETED)
        logger.info(f"Completion sweep checked {len(outcomes)} audits, completed {completed}")
        return {"checked": len(outcomes), "completed": completed, "audits": outcomes}

    async def check_audit(self, audit_id: UUID) -> str:
        key = str(audit_id)
        async with self.session_factory() as session:
            service = AuditService(session)
            audit = await service.get_by_id(audit_id)
            if audit is None or audit.status != AuditStatus.IN_PROGRESS:
                await self.store.delete(key)
                return self.SKIPPED

            queued = await self.queue.queued_count(key)
            crawled = await count_crawl_results(session, audit.id)
            total = crawled + queued

            if audit.pages_total != total or audit.pages_crawled != crawled:
                await service.transition(
                    audit.id,
                    (AuditStatus.IN_PROGRESS,),
                    pages_total=total,
                    pages_crawled=crawled,
                )
                await session.commit()

            if queued > 0:
                await self.store.delete(key)
                return self.ACTIVE

            if crawled == 0 or crawled < total:
                return self.WAITING

            now = self.clock()
            state = await self.store.get(key)
            if state is None or state.pages_total != total or state.pages_crawled != crawled:
                await self.store.set(key, ReadyState(timestamp=now, pages_total=total, pages_crawled=crawled))
                logger.debug(f"Audit {key} provisionally ready ({crawled}/{total})")
                return self.PROVISIONAL

            if now - state.timestamp < self.window_seconds:
                return self.PROVISIONAL

            changed = await service.transition(
                audit.id,
                (AuditStatus.IN_PROGRESS,),
                status=AuditStatus.COMPLETED,
                completed_at=datetime.fromtimestamp(now, tz=timezone.utc),
                pages_total=total,
                pages_crawled=crawled,
            )
            if not changed:
                await session.rollback()
                await self.store.delete(key)
                return self.SKIPPED

            await clear_audit_logs(session, audit.id)
            await session.commit()

        await self.store.delete(key)
        await self.queue.clear_visited(key)
        logger.info(f"Audit {key} completed with {crawled} pages")
        return self.COMPLETED
