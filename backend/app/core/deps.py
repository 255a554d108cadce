"""
FastAPI dependencies for the database and the crawl runtime.
"""
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.runtime import CrawlRuntime


def get_runtime(request: Request) -> CrawlRuntime:
    """Crawl runtime built in the application lifespan."""
    return request.app.state.runtime


DbSession = Annotated[AsyncSession, Depends(get_db)]
Runtime = Annotated[CrawlRuntime, Depends(get_runtime)]
