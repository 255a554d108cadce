"""
Pytest configuration and fixtures for the SEO crawler tests.
"""
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, JSON
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# IMPORTANT: Patch PostgreSQL types for SQLite compatibility
# Must be done before importing any models
import sqlalchemy.dialects.postgresql as pg_dialect
from sqlalchemy.types import TypeDecorator, CHAR
import uuid as uuid_module


# Custom UUID type that works with SQLite
class SQLiteUUID(TypeDecorator):
    """SQLite-compatible UUID type."""
    impl = CHAR(36)
    cache_ok = True

    def __init__(self, *args, **kwargs):
        super().__init__()

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid_module.UUID(value)
        return value


pg_dialect.JSONB = JSON
pg_dialect.UUID = SQLiteUUID

from app.database import get_db
from app.models.audit import Audit, AuditStatus
from app.models.base import Base
from app.models.crawl import CrawlResult
from app.models.project import Project
from app.services.completion import MemoryReadyStateStore
from app.services.crawl_queue import CrawlQueue, MemoryQueueBackend
from app.services.crawl_store import save_crawl_result
from app.services.fetcher import HtmlExtractor, SeoData
from app.services.runtime import build_runtime
from app.services.url_normalizer import bare_hostname
from fixtures.sample_pages import page_html

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START_TIME = 1_767_960_000.0  # 2026-01-09 12:00:00 UTC


class FakeClock:
    """Injectable time source (seconds since the epoch)."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> float:
        self.now += seconds + minutes * 60
        return self.now


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine with foreign keys enforced."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # ON DELETE CASCADE needs this in SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def project(session_factory) -> Project:
    """Committed project for example.com."""
    async with session_factory() as session:
        project = Project(
            id=uuid.UUID("00000000-0000-0000-0000-000000000001"),
            name="Example",
            base_url="https://example.com/",
            domain="example.com",
        )
        session.add(project)
        await session.commit()
        return project


@pytest.fixture
def make_audit(session_factory):
    """Factory creating committed audits in a given status."""

    async def _make(project_id: uuid.UUID, status: AuditStatus = AuditStatus.PENDING, **values) -> Audit:
        async with session_factory() as session:
            audit = Audit(project_id=project_id, status=status, **values)
            session.add(audit)
            await session.commit()
            return audit

    return _make


@pytest_asyncio.fixture
async def audit(project, make_audit) -> Audit:
    """Pending audit of the example.com project."""
    return await make_audit(project.id)


@pytest.fixture
def add_page(session_factory):
    """Factory persisting an extracted page as a crawl result of an audit."""

    async def _add(audit_id: uuid.UUID, url: str, html: str | None = None, **values) -> CrawlResult:
        data = SeoData(url=url, final_url=url, status_code=200, content_type="text/html")
        HtmlExtractor(bare_hostname(url)).extract(html or page_html(url), data)
        async with session_factory() as session:
            result = await save_crawl_result(session, audit_id, data)
            for key, value in values.items():
                setattr(result, key, value)
            await session.commit()
            return result

    return _add


# ============================================================================
# Crawl engine fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue_backend() -> MemoryQueueBackend:
    return MemoryQueueBackend()


@pytest.fixture
def queue(queue_backend, clock) -> CrawlQueue:
    return CrawlQueue(queue_backend, clock=clock, max_attempts=3, backoff_seconds=2)


@pytest.fixture
def ready_store() -> MemoryReadyStateStore:
    return MemoryReadyStateStore()


@pytest.fixture
def make_runtime(session_factory, queue_backend, ready_store, clock):
    """Build a runtime whose HTTP traffic goes to the given transport."""

    def _make(transport=None):
        return build_runtime(
            session_factory,
            backend=queue_backend,
            ready_store=ready_store,
            clock=clock,
            transport=transport,
        )

    return _make


# ============================================================================
# FastAPI App Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def app(session_factory, make_runtime) -> FastAPI:
    """Create test FastAPI application."""
    from app.main import app as main_app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.state.runtime = make_runtime()

    yield main_app

    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
