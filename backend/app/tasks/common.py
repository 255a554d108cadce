"""
Helpers shared by Celery tasks.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.database import get_task_session_maker
from app.services.runtime import CrawlRuntime, build_runtime


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@asynccontextmanager
async def task_runtime() -> AsyncIterator[CrawlRuntime]:
    """Crawl runtime bound to this task's event loop, with its own engine."""
    session_factory = get_task_session_maker()
    runtime = build_runtime(session_factory)
    try:
        yield runtime
    finally:
        await runtime.close()
        await session_factory.kw["bind"].dispose()
