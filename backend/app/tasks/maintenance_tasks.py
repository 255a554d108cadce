"""
Maintenance Tasks

Periodic sweeps scheduled by Celery beat:
- completion sweep (every minute)
- auto-stop of audits paused for too long (hourly)
- queue janitor for finished jobs (hourly)
"""

import logging

from celery import shared_task

from app.tasks.common import run_async, task_runtime

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def run_completion_sweep(self):
    """Finalize in-progress audits that have been stable and done long enough."""
    return run_async(_run_completion_sweep())


async def _run_completion_sweep() -> dict:
    async with task_runtime() as runtime:
        return await runtime.detector.run_sweep()


@shared_task(bind=True)
def auto_stop_paused_audits(self):
    """Stop audits paused for longer than PAUSED_AUDIT_TTL_DAYS."""
    return run_async(_auto_stop_paused_audits())


async def _auto_stop_paused_audits() -> dict:
    async with task_runtime() as runtime:
        return await runtime.manager.run_auto_stop_paused_sweep()


@shared_task(bind=True)
def clean_queue(self):
    """Remove old completed and failed crawl jobs."""
    return run_async(_clean_queue())


async def _clean_queue() -> dict:
    async with task_runtime() as runtime:
        return await runtime.queue.clean()
