"""
Unit tests for the crawl job queue (memory backend).
"""
import pytest

from app.services.crawl_queue import (
    CrawlJob,
    CrawlQueue,
    JobState,
    MemoryQueueBackend,
    create_queue_backend,
    RedisQueueBackend,
)

AUDIT = "11111111-1111-1111-1111-111111111111"
OTHER_AUDIT = "22222222-2222-2222-2222-222222222222"


class TestEnqueue:
    """Test enqueueing and duplicate detection."""

    @pytest.mark.asyncio
    async def test_enqueue_waiting(self, queue, clock):
        job = await queue.enqueue("https://example.com/a", AUDIT, depth=2)

        assert job.state == JobState.WAITING
        assert job.domain == "example.com"
        assert job.depth == 2
        assert job.enqueued_at == clock.now

    @pytest.mark.asyncio
    async def test_duplicate_url_is_skipped(self, queue):
        """The same normalized URL is queued at most once per audit."""
        first = await queue.enqueue("https://example.com/a", AUDIT)
        second = await queue.enqueue("https://Example.com/a/", AUDIT)

        assert first is not None
        assert second is None
        assert await queue.queued_count(AUDIT) == 1

    @pytest.mark.asyncio
    async def test_same_url_other_audit(self, queue):
        """Job ids are scoped per audit."""
        assert await queue.enqueue("https://example.com/a", AUDIT)
        assert await queue.enqueue("https://example.com/a", OTHER_AUDIT)

    @pytest.mark.asyncio
    async def test_delay_makes_job_delayed(self, queue, clock):
        job = await queue.enqueue("https://example.com/a", AUDIT, delay_ms=1500)

        assert job.state == JobState.DELAYED
        assert job.ready_at == clock.now + 1.5

    @pytest.mark.asyncio
    async def test_rate_limited_spacing(self, queue, clock):
        """Jobs for one domain are spaced by the crawl delay."""
        jobs = [
            await queue.enqueue_rate_limited(f"https://example.com/{i}", AUDIT, crawl_delay=0.5)
            for i in range(3)
        ]

        assert jobs[0].state == JobState.WAITING
        assert [job.ready_at - clock.now for job in jobs] == [0.0, 0.5, 1.0]

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_domain(self, queue):
        await queue.enqueue_rate_limited("https://example.com/a", AUDIT, crawl_delay=2)
        other = await queue.enqueue_rate_limited("https://other.org/a", AUDIT, crawl_delay=2)

        assert other.state == JobState.WAITING


class TestClaim:
    """Test claiming jobs."""

    @pytest.mark.asyncio
    async def test_claim_marks_active(self, queue):
        await queue.enqueue("https://example.com/a", AUDIT)

        job = await queue.claim()

        assert job.state == JobState.ACTIVE
        assert job.attempts == 1
        assert await queue.claim() is None

    @pytest.mark.asyncio
    async def test_priority_order(self, queue):
        """Lower priority numbers are served first."""
        await queue.enqueue("https://example.com/low", AUDIT, priority=5)
        await queue.enqueue("https://example.com/high", AUDIT, priority=0)

        assert (await queue.claim()).url == "https://example.com/high"
        assert (await queue.claim()).url == "https://example.com/low"

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self, queue):
        for name in ("first", "second", "third"):
            await queue.enqueue(f"https://example.com/{name}", AUDIT)

        urls = [(await queue.claim()).url for _ in range(3)]
        assert urls == [
            "https://example.com/first",
            "https://example.com/second",
            "https://example.com/third",
        ]

    @pytest.mark.asyncio
    async def test_delayed_job_waits_for_clock(self, queue, clock):
        await queue.enqueue("https://example.com/a", AUDIT, delay_ms=1000)

        assert await queue.claim() is None
        clock.advance(seconds=1)
        assert (await queue.claim()).url == "https://example.com/a"


class TestCompleteAndFail:
    """Test job completion and retries."""

    @pytest.mark.asyncio
    async def test_complete(self, queue):
        await queue.enqueue("https://example.com/a", AUDIT)
        job = await queue.claim()

        await queue.complete(job)

        counts = await queue.counts(AUDIT)
        assert counts.completed == 1
        assert counts.queued == 0

    @pytest.mark.asyncio
    async def test_retry_with_backoff(self, queue, clock):
        """Retryable failures back off exponentially until attempts run out."""
        await queue.enqueue("https://example.com/a", AUDIT)

        job = await queue.claim()
        assert await queue.fail(job, "timeout", retryable=True) == JobState.DELAYED
        assert job.ready_at == clock.now + 2

        clock.advance(seconds=2)
        job = await queue.claim()
        assert job.attempts == 2
        assert await queue.fail(job, "timeout", retryable=True) == JobState.DELAYED
        assert job.ready_at == clock.now + 4

        clock.advance(seconds=4)
        job = await queue.claim()
        assert job.attempts == 3
        assert await queue.fail(job, "timeout", retryable=True) == JobState.FAILED
        assert job.error == "timeout"
        assert (await queue.counts(AUDIT)).failed == 1

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, queue):
        await queue.enqueue("https://example.com/a", AUDIT)
        job = await queue.claim()

        assert await queue.fail(job, "boom") == JobState.FAILED


class TestRemoval:
    """Test pause, stop and force stop."""

    async def _fill(self, queue):
        await queue.enqueue("https://example.com/active", AUDIT)
        await queue.claim()
        await queue.enqueue("https://example.com/waiting", AUDIT)
        await queue.enqueue("https://example.com/delayed", AUDIT, delay_ms=5000)
        await queue.enqueue("https://example.com/other", OTHER_AUDIT)

    @pytest.mark.asyncio
    async def test_pause_keeps_active(self, queue):
        """Pausing removes pending jobs; active ones finish."""
        await self._fill(queue)

        report = await queue.pause(AUDIT)

        assert report.removed == 2
        assert report.active_skipped == 1
        assert report.removed_by_state == {"waiting": 1, "delayed": 1}
        assert await queue.outstanding_urls(AUDIT) == ["https://example.com/active"]
        assert await queue.queued_count(OTHER_AUDIT) == 1

    @pytest.mark.asyncio
    async def test_stop_removes_everything_and_visited(self, queue):
        await self._fill(queue)
        await queue.mark_visited(AUDIT, "https://example.com/active")

        report = await queue.stop(AUDIT)

        assert report.removed == 3
        assert await queue.queued_count(AUDIT) == 0
        assert await queue.visited_count(AUDIT) == 0
        assert await queue.queued_count(OTHER_AUDIT) == 1

    @pytest.mark.asyncio
    async def test_stop_resets_domain_slot(self, queue, clock):
        """A stopped audit no longer pushes back new jobs for the domain."""
        for i in range(5):
            await queue.enqueue_rate_limited(f"https://example.com/{i}", AUDIT, crawl_delay=2)
        await queue.stop(AUDIT)

        job = await queue.enqueue_rate_limited("https://example.com/new", OTHER_AUDIT, crawl_delay=2)
        assert job.ready_at == clock.now

    @pytest.mark.asyncio
    async def test_force_stop_all(self, queue):
        """Without an audit id every pending job is removed."""
        await self._fill(queue)

        report = await queue.force_stop()

        assert report.removed == 3
        assert report.active_skipped == 1
        counts = await queue.counts()
        assert counts.queued == 1
        assert counts.active == 1

    @pytest.mark.asyncio
    async def test_force_stop_unknown_audit(self, queue):
        report = await queue.force_stop("33333333-3333-3333-3333-333333333333")

        assert report.removed == 0
        assert report.removed_by_state == {}


class TestClean:
    """Test removal of finished jobs."""

    @pytest.mark.asyncio
    async def test_clean_by_age(self, queue, clock):
        await queue.enqueue("https://example.com/done", AUDIT)
        await queue.enqueue("https://example.com/bad", AUDIT)
        await queue.complete(await queue.claim())
        await queue.fail(await queue.claim(), "boom")

        assert await queue.clean(completed_age=60, failed_age=60) == {"completed": 0, "failed": 0}

        clock.advance(seconds=61)
        assert await queue.clean(completed_age=60, failed_age=3600) == {"completed": 1, "failed": 0}
        assert (await queue.counts(AUDIT)).failed == 1


class TestVisited:
    """Test the visited set."""

    @pytest.mark.asyncio
    async def test_mark_visited_once(self, queue):
        """Spelling variants of a URL are the same visited entry."""
        assert await queue.mark_visited(AUDIT, "https://example.com/a")
        assert not await queue.mark_visited(AUDIT, "https://EXAMPLE.com/a/#frag")
        assert await queue.mark_visited(OTHER_AUDIT, "https://example.com/a")
        assert await queue.visited_count(AUDIT) == 1

    @pytest.mark.asyncio
    async def test_clear_visited(self, queue):
        await queue.mark_visited(AUDIT, "https://example.com/a")
        await queue.clear_visited(AUDIT)

        assert await queue.mark_visited(AUDIT, "https://example.com/a")


class TestJobSerialization:
    """Test job JSON used by the Redis backend."""

    def test_json_keeps_state(self):
        job = CrawlJob(id="a:1", url="https://example.com/", audit_id="a", domain="example.com", state=JobState.DELAYED)

        restored = CrawlJob.from_json(job.to_json())

        assert restored == job
        assert restored.state is JobState.DELAYED


class TestBackendFactory:
    """Test create_queue_backend."""

    def test_kinds(self):
        assert isinstance(create_queue_backend("memory"), MemoryQueueBackend)
        assert isinstance(create_queue_backend("REDIS"), RedisQueueBackend)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_queue_backend("kafka")

    @pytest.mark.asyncio
    async def test_separate_queues_share_backend(self, clock):
        """Queues over one backend see each other's jobs."""
        backend = MemoryQueueBackend()
        producer = CrawlQueue(backend, clock=clock)
        consumer = CrawlQueue(backend, clock=clock)

        await producer.enqueue("https://example.com/a", AUDIT)

        assert (await consumer.claim()).url == "https://example.com/a"
