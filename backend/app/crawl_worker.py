"""
Crawl worker process.

Runs the asyncio worker pool against the shared Redis crawl queue until
SIGINT/SIGTERM:

    python -m app.crawl_worker
"""
import asyncio
import logging
import signal

from app.config import settings
from app.core.logging import setup_logging
from app.database import async_session_maker
from app.services.runtime import build_runtime

logger = logging.getLogger(__name__)


async def main() -> None:
    runtime = build_runtime(async_session_maker)
    pool = runtime.pool()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    pool.start()
    logger.info(f"Crawl worker running (queue backend: {settings.QUEUE_BACKEND})")
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down crawl worker")
        await pool.stop()
        await runtime.close()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
