"""
FastAPI application entry point for the SEO crawler.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.config import settings
from app.core.logging import setup_logging
from app.database import async_session_maker, init_db
from app.services.runtime import build_runtime
from app.worker import celery_app

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    setup_logging()
    await init_db()
    # Reset Celery connection pool to ensure fresh connections
    celery_app.close()
    app.state.runtime = build_runtime(async_session_maker)
    pool = None
    if settings.CRAWL_WORKER_IN_PROCESS:
        pool = app.state.runtime.pool()
        pool.start()
    yield
    # Shutdown
    if pool is not None:
        await pool.stop()
    await app.state.runtime.close()
    celery_app.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.VERSION}
