"""
Crawl Job Queue

Delayed, priority, per-domain rate-limited queue of crawl jobs. A job is one
URL belonging to one audit. Jobs move waiting/delayed -> active ->
completed | failed. Two backends share the same semantics:
- RedisQueueBackend: sorted sets in Redis, shared by the API, the worker
  pool and Celery sweeps
- MemoryQueueBackend: in-process, for single-process runs and tests

Ordering is approximate: lower priority numbers are served first, and the
per-domain delay spaces jobs for the same host in time.
"""

import asyncio
import itertools
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from enum import Enum as PyEnum
from typing import Callable, Optional

import redis.asyncio as redis

from app.config import settings
from app.services.url_normalizer import bare_hostname, normalize_url, url_key

logger = logging.getLogger(__name__)

PRIORITY_SCALE = 10**12


class JobState(str, PyEnum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


PENDING_STATES = (JobState.WAITING, JobState.DELAYED)
QUEUED_STATES = (JobState.WAITING, JobState.DELAYED, JobState.ACTIVE)


@dataclass
class CrawlJob:
    id: str
    url: str
    audit_id: str
    domain: str
    priority: int = 0
    depth: int = 0
    state: JobState = JobState.WAITING
    attempts: int = 0
    ready_at: float = 0.0
    enqueued_at: float = 0.0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        data = asdict(self)
        data["state"] = self.state.value
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "CrawlJob":
        data = json.loads(raw)
        data["state"] = JobState(data["state"])
        return cls(**data)


@dataclass
class QueueCounts:
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def queued(self) -> int:
        """Jobs that still count as outstanding work."""
        return self.waiting + self.delayed + self.active

    def add(self, state: JobState):
        setattr(self, state.value, getattr(self, state.value) + 1)

    def to_dict(self) -> dict:
        return {**asdict(self), "queued": self.queued}


@dataclass
class RemovalReport:
    removed: int = 0
    active_skipped: int = 0
    removed_by_state: dict = field(default_factory=dict)

    def record(self, state: JobState):
        self.removed += 1
        self.removed_by_state[state.value] = self.removed_by_state.get(state.value, 0) + 1


def _state_score(job: CrawlJob, seq: int) -> float:
    if job.state == JobState.WAITING:
        return job.priority * PRIORITY_SCALE + seq
    if job.state == JobState.DELAYED:
        return job.ready_at
    if job.state == JobState.ACTIVE:
        return job.started_at or 0.0
    return job.finished_at or 0.0


class QueueBackend(ABC):
    """Storage primitives for the crawl queue."""

    @abstractmethod
    async def add(self, job: CrawlJob) -> bool:
        """Store a new job. Returns False when the id already exists."""

    @abstractmethod
    async def get(self, job_id: str) -> CrawlJob | None: ...

    @abstractmethod
    async def save(self, job: CrawlJob) -> None:
        """Persist an existing job and move it to its state's index."""

    @abstractmethod
    async def remove(self, job_id: str) -> CrawlJob | None: ...

    @abstractmethod
    async def pop_ready(self, now: float) -> CrawlJob | None:
        """Promote due delayed jobs, then claim the best waiting job as active."""

    @abstractmethod
    async def jobs(self, audit_id: str | None = None, states: tuple = QUEUED_STATES) -> list[CrawlJob]: ...

    @abstractmethod
    async def counts(self) -> QueueCounts: ...

    @abstractmethod
    async def finished_before(self, state: JobState, cutoff: float) -> list[str]: ...

    @abstractmethod
    async def mark_visited(self, audit_id: str, key: str) -> bool:
        """Atomic insert-if-absent. True when ``key`` was not yet present."""

    @abstractmethod
    async def visited_count(self, audit_id: str) -> int: ...

    @abstractmethod
    async def clear_visited(self, audit_id: str) -> None: ...

    @abstractmethod
    async def reserve_slot(self, domain: str, spacing: float, now: float) -> float:
        """Reserve the next fetch slot for ``domain``; returns its start time."""

    @abstractmethod
    async def clear_slot(self, domain: str) -> None: ...

    async def close(self) -> None:
        pass


class MemoryQueueBackend(QueueBackend):
    """In-process backend. State is lost when the process exits."""

    def __init__(self):
        self._jobs: dict[str, CrawlJob] = {}
        self._index: dict[JobState, dict[str, float]] = {state: {} for state in JobState}
        self._visited: dict[str, set[str]] = {}
        self._slots: dict[str, float] = {}
        self._seq = itertools.count()
        self._lock = asyncio.Lock()

    def _reindex(self, job: CrawlJob):
        for index in self._index.values():
            index.pop(job.id, None)
        self._index[job.state][job.id] = _state_score(job, next(self._seq))

    async def add(self, job: CrawlJob) -> bool:
        async with self._lock:
            if job.id in self._jobs:
                return False
            self._jobs[job.id] = job
            self._reindex(job)
            return True

    async def get(self, job_id: str) -> CrawlJob | None:
        return self._jobs.get(job_id)

    async def save(self, job: CrawlJob) -> None:
        async with self._lock:
            if job.id not in self._jobs:
                return
            self._jobs[job.id] = job
            self._reindex(job)

    async def remove(self, job_id: str) -> CrawlJob | None:
        async with self._lock:
            job = self._jobs.pop(job_id, None)
            for index in self._index.values():
                index.pop(job_id, None)
            return job

    async def pop_ready(self, now: float) -> CrawlJob | None:
        async with self._lock:
            delayed = self._index[JobState.DELAYED]
            for job_id in [j for j, ready_at in delayed.items() if ready_at <= now]:
                job = self._jobs[job_id]
                job.state = JobState.WAITING
                self._reindex(job)

            waiting = self._index[JobState.WAITING]
            if not waiting:
                return None
            job_id = min(waiting, key=waiting.get)
            job = self._jobs[job_id]
            job.state = JobState.ACTIVE
            job.started_at = now
            self._reindex(job)
            return job

    async def jobs(self, audit_id: str | None = None, states: tuple = QUEUED_STATES) -> list[CrawlJob]:
        return [
            self._jobs[job_id]
            for state in states
            for job_id in list(self._index[state])
            if audit_id is None or self._jobs[job_id].audit_id == audit_id
        ]

    async def counts(self) -> QueueCounts:
        return QueueCounts(**{state.value: len(index) for state, index in self._index.items()})

    async def finished_before(self, state: JobState, cutoff: float) -> list[str]:
        return [job_id for job_id, finished in self._index[state].items() if finished < cutoff]

    async def mark_visited(self, audit_id: str, key: str) -> bool:
        visited = self._visited.setdefault(audit_id, set())
        if key in visited:
            return False
        visited.add(key)
        return True

    async def visited_count(self, audit_id: str) -> int:
        return len(self._visited.get(audit_id, ()))

    async def clear_visited(self, audit_id: str) -> None:
        self._visited.pop(audit_id, None)

    async def reserve_slot(self, domain: str, spacing: float, now: float) -> float:
        async with self._lock:
            start = max(now, self._slots.get(domain, 0.0))
            self._slots[domain] = start + spacing
            return start

    async def clear_slot(self, domain: str) -> None:
        self._slots.pop(domain, None)


# Atomic per-domain slot reservation; floats travel as strings because Lua
# numbers are truncated to integers in replies.
RESERVE_SLOT_SCRIPT = """
local nxt = tonumber(redis.call('GET', KEYS[1]) or '0')
local now = tonumber(ARGV[1])
local start = math.max(now, nxt)
redis.call('SET', KEYS[1], tostring(start + tonumber(ARGV[2])), 'EX', 3600)
return tostring(start)
"""


class RedisQueueBackend(QueueBackend):
    """Redis backend.

    Keys:
    - ``{prefix}:job:{id}``: job JSON
    - ``{prefix}:{state}``: sorted set per state (score depends on state)
    - ``{prefix}:audit:{audit_id}``: set of job ids
    - ``{prefix}:visited:{audit_id}``: set of normalized URL keys
    - ``{prefix}:slot:{domain}``: next free fetch time for a domain
    """

    def __init__(self, redis_url: str = None, prefix: str = "crawlq"):
        self.redis_url = redis_url or settings.REDIS_URL
        self.prefix = prefix
        self._redis: Optional[redis.Redis] = None

    async def get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    def _job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def _state_key(self, state: JobState) -> str:
        return f"{self.prefix}:{state.value}"

    def _audit_key(self, audit_id: str) -> str:
        return f"{self.prefix}:audit:{audit_id}"

    def _visited_key(self, audit_id: str) -> str:
        return f"{self.prefix}:visited:{audit_id}"

    def _slot_key(self, domain: str) -> str:
        return f"{self.prefix}:slot:{domain}"

    async def _write(self, r: redis.Redis, job: CrawlJob):
        seq = await r.incr(f"{self.prefix}:seq") if job.state == JobState.WAITING else 0
        pipe = r.pipeline()
        pipe.set(self._job_key(job.id), job.to_json())
        for state in JobState:
            if state != job.state:
                pipe.zrem(self._state_key(state), job.id)
        pipe.zadd(self._state_key(job.state), {job.id: _state_score(job, seq)})
        await pipe.execute()

    async def add(self, job: CrawlJob) -> bool:
        r = await self.get_redis()
        # SET NX claims the id atomically
        created = await r.set(self._job_key(job.id), job.to_json(), nx=True)
        if not created:
            return False
        await r.sadd(self._audit_key(job.audit_id), job.id)
        await self._write(r, job)
        return True

    async def get(self, job_id: str) -> CrawlJob | None:
        r = await self.get_redis()
        raw = await r.get(self._job_key(job_id))
        return CrawlJob.from_json(raw) if raw else None

    async def save(self, job: CrawlJob) -> None:
        r = await self.get_redis()
        if not await r.exists(self._job_key(job.id)):
            return
        await self._write(r, job)

    async def remove(self, job_id: str) -> CrawlJob | None:
        r = await self.get_redis()
        job = await self.get(job_id)
        pipe = r.pipeline()
        pipe.delete(self._job_key(job_id))
        for state in JobState:
            pipe.zrem(self._state_key(state), job_id)
        if job:
            pipe.srem(self._audit_key(job.audit_id), job_id)
        await pipe.execute()
        return job

    async def pop_ready(self, now: float) -> CrawlJob | None:
        r = await self.get_redis()

        due = await r.zrangebyscore(self._state_key(JobState.DELAYED), "-inf", now)
        for job_id in due:
            # Only the caller whose ZREM succeeds promotes the job
            if not await r.zrem(self._state_key(JobState.DELAYED), job_id):
                continue
            job = await self.get(job_id)
            if job is None:
                continue
            job.state = JobState.WAITING
            await self._write(r, job)

        while True:
            popped = await r.zpopmin(self._state_key(JobState.WAITING))
            if not popped:
                return None
            job_id = popped[0][0]
            job = await self.get(job_id)
            if job is None:
                continue
            job.state = JobState.ACTIVE
            job.started_at = now
            await self._write(r, job)
            return job

    async def jobs(self, audit_id: str | None = None, states: tuple = QUEUED_STATES) -> list[CrawlJob]:
        r = await self.get_redis()
        if audit_id is not None:
            job_ids = list(await r.smembers(self._audit_key(audit_id)))
        else:
            job_ids = []
            for state in states:
                job_ids.extend(await r.zrange(self._state_key(state), 0, -1))
        if not job_ids:
            return []

        raws = await r.mget([self._job_key(job_id) for job_id in job_ids])
        jobs = [CrawlJob.from_json(raw) for raw in raws if raw]
        return [job for job in jobs if job.state in states]

    async def counts(self) -> QueueCounts:
        r = await self.get_redis()
        pipe = r.pipeline()
        for state in JobState:
            pipe.zcard(self._state_key(state))
        results = await pipe.execute()
        return QueueCounts(**{state.value: count for state, count in zip(JobState, results)})

    async def finished_before(self, state: JobState, cutoff: float) -> list[str]:
        r = await self.get_redis()
        return list(await r.zrangebyscore(self._state_key(state), "-inf", f"({cutoff}"))

    async def mark_visited(self, audit_id: str, key: str) -> bool:
        r = await self.get_redis()
        return bool(await r.sadd(self._visited_key(audit_id), key))

    async def visited_count(self, audit_id: str) -> int:
        r = await self.get_redis()
        return await r.scard(self._visited_key(audit_id))

    async def clear_visited(self, audit_id: str) -> None:
        r = await self.get_redis()
        await r.delete(self._visited_key(audit_id))

    async def reserve_slot(self, domain: str, spacing: float, now: float) -> float:
        r = await self.get_redis()
        start = await r.eval(RESERVE_SLOT_SCRIPT, 1, self._slot_key(domain), repr(now), repr(spacing))
        return float(start)

    async def clear_slot(self, domain: str) -> None:
        r = await self.get_redis()
        await r.delete(self._slot_key(domain))


class CrawlQueue:
    """Queue operations used by the lifecycle manager, workers and sweeps."""

    def __init__(
        self,
        backend: QueueBackend,
        clock: Callable[[], float] = time.time,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.backend = backend
        self.clock = clock
        self.max_attempts = max_attempts or settings.QUEUE_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.QUEUE_BACKOFF_SECONDS

    @staticmethod
    def job_id_for(audit_id: str, url: str) -> str:
        return f"{audit_id}:{url_key(normalize_url(url))}"

    async def enqueue(
        self,
        url: str,
        audit_id: str,
        delay_ms: int = 0,
        priority: int = 0,
        depth: int = 0,
    ) -> CrawlJob | None:
        """Add a job; returns None if the same URL is already queued for the audit."""
        now = self.clock()
        job = CrawlJob(
            id=self.job_id_for(str(audit_id), url),
            url=url,
            audit_id=str(audit_id),
            domain=bare_hostname(url),
            priority=priority,
            depth=depth,
            state=JobState.DELAYED if delay_ms > 0 else JobState.WAITING,
            ready_at=now + delay_ms / 1000.0,
            enqueued_at=now,
        )
        if not await self.backend.add(job):
            logger.debug(f"Skipping duplicate job {job.id} ({url})")
            return None
        return job

    async def enqueue_rate_limited(
        self,
        url: str,
        audit_id: str,
        crawl_delay: float,
        priority: int = 0,
        depth: int = 0,
    ) -> CrawlJob | None:
        """Enqueue with a delay that spaces jobs for the same domain ``crawl_delay`` apart."""
        now = self.clock()
        start = await self.backend.reserve_slot(bare_hostname(url), crawl_delay, now)
        delay_ms = max(0, int((start - now) * 1000))
        return await self.enqueue(url, audit_id, delay_ms=delay_ms, priority=priority, depth=depth)

    async def claim(self) -> CrawlJob | None:
        """Next eligible job, marked active."""
        job = await self.backend.pop_ready(self.clock())
        if job:
            job.attempts += 1
            await self.backend.save(job)
        return job

    async def complete(self, job: CrawlJob) -> None:
        job.state = JobState.COMPLETED
        job.finished_at = self.clock()
        await self.backend.save(job)

    async def fail(self, job: CrawlJob, error: str, retryable: bool = False) -> JobState:
        """Retry with exponential backoff while attempts remain, else mark failed."""
        job.error = error
        if retryable and job.attempts < self.max_attempts:
            backoff = self.backoff_seconds * (2 ** (job.attempts - 1))
            job.state = JobState.DELAYED
            job.ready_at = self.clock() + backoff
            logger.info(f"Retrying {job.url} in {backoff:.1f}s (attempt {job.attempts}/{self.max_attempts})")
        else:
            job.state = JobState.FAILED
            job.finished_at = self.clock()
            logger.warning(f"Job failed for {job.url}: {error}")
        await self.backend.save(job)
        return job.state

    async def discard(self, job: CrawlJob) -> None:
        """Forget a job whose result was dropped so the URL can be queued again."""
        await self.backend.remove(job.id)

    async def clear_finished(self, audit_id: str) -> int:
        """Remove the audit's completed and failed jobs, freeing their ids for re-enqueue."""
        removed = 0
        for job in await self.backend.jobs(str(audit_id), (JobState.COMPLETED, JobState.FAILED)):
            if await self.backend.remove(job.id):
                removed += 1
        return removed

    async def _remove_jobs(self, audit_id: str | None, states: tuple) -> RemovalReport:
        report = RemovalReport()
        domains = set()
        for job in await self.backend.jobs(audit_id, states):
            if await self.backend.remove(job.id):
                report.record(job.state)
                domains.add(job.domain)
        for domain in domains:
            await self.backend.clear_slot(domain)
        return report

    async def pause(self, audit_id: str) -> RemovalReport:
        """Drop waiting and delayed jobs; active jobs finish on their own."""
        report = await self._remove_jobs(str(audit_id), PENDING_STATES)
        report.active_skipped = len(await self.backend.jobs(str(audit_id), (JobState.ACTIVE,)))
        logger.info(f"Paused audit {audit_id}: removed {report.removed} jobs, {report.active_skipped} still active")
        return report

    async def stop(self, audit_id: str) -> RemovalReport:
        """Drop every outstanding job for the audit, active ones included."""
        report = await self._remove_jobs(str(audit_id), QUEUED_STATES)
        await self.backend.clear_visited(str(audit_id))
        logger.info(f"Stopped audit {audit_id}: removed {report.removed} jobs")
        return report

    async def force_stop(self, audit_id: str | None = None) -> RemovalReport:
        """Drop waiting/delayed jobs for one audit or all audits, whether or not the audit exists."""
        target = str(audit_id) if audit_id else None
        report = await self._remove_jobs(target, PENDING_STATES)
        report.active_skipped = len(await self.backend.jobs(target, (JobState.ACTIVE,)))
        if target:
            await self.backend.clear_visited(target)
        logger.info(
            f"Force stop ({audit_id or 'all audits'}): removed {report.removed}, "
            f"{report.active_skipped} active jobs will be discarded on completion"
        )
        return report

    async def counts(self, audit_id: str | None = None) -> QueueCounts:
        if audit_id is None:
            return await self.backend.counts()
        counts = QueueCounts()
        for job in await self.backend.jobs(str(audit_id), tuple(JobState)):
            counts.add(job.state)
        return counts

    async def queued_count(self, audit_id: str) -> int:
        return len(await self.backend.jobs(str(audit_id), QUEUED_STATES))

    async def outstanding_urls(self, audit_id: str) -> list[str]:
        """URLs of waiting, delayed and active jobs for the audit."""
        return [job.url for job in await self.backend.jobs(str(audit_id), QUEUED_STATES)]

    async def clean(
        self,
        completed_age: float | None = None,
        failed_age: float | None = None,
    ) -> dict:
        """Remove completed/failed jobs older than the given ages (seconds)."""
        now = self.clock()
        completed_age = completed_age if completed_age is not None else settings.QUEUE_COMPLETED_TTL_SECONDS
        failed_age = failed_age if failed_age is not None else settings.QUEUE_FAILED_TTL_SECONDS

        removed = {}
        for state, age in ((JobState.COMPLETED, completed_age), (JobState.FAILED, failed_age)):
            job_ids = await self.backend.finished_before(state, now - age)
            for job_id in job_ids:
                await self.backend.remove(job_id)
            removed[state.value] = len(job_ids)
        logger.info(f"Queue cleanup removed {removed['completed']} completed and {removed['failed']} failed jobs")
        return removed

    async def mark_visited(self, audit_id: str, url: str) -> bool:
        """Atomically record ``url`` as seen; False if another caller got there first."""
        return await self.backend.mark_visited(str(audit_id), url_key(normalize_url(url)))

    async def visited_count(self, audit_id: str) -> int:
        return await self.backend.visited_count(str(audit_id))

    async def clear_visited(self, audit_id: str) -> None:
        await self.backend.clear_visited(str(audit_id))

    async def close(self) -> None:
        await self.backend.close()


def create_queue_backend(kind: str | None = None) -> QueueBackend:
    kind = (kind or settings.QUEUE_BACKEND).lower()
    if kind == "memory":
        return MemoryQueueBackend()
    if kind == "redis":
        return RedisQueueBackend()
    raise ValueError(f"Unknown queue backend: {kind}")
