"""
Audit Tasks

Background crawl setup: robots.txt, sitemap discovery and seed enqueuing
for audits already marked in_progress by the API.
"""

import logging

from celery import shared_task

from app.tasks.common import run_async, task_runtime

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=0)
def prepare_audit_crawl(self, audit_id: str):
    """Resolve robots/sitemaps and enqueue the seed set for an audit."""
    return run_async(_prepare_audit_crawl(audit_id))


async def _prepare_audit_crawl(audit_id: str) -> dict:
    async with task_runtime() as runtime:
        result = await runtime.manager.setup_crawl(audit_id)
    logger.info(f"Crawl setup for audit {audit_id}: {result.status} ({result.message})")
    return result.to_dict()
