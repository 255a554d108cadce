"""
Unit tests for the backlink indexer.
"""
from datetime import datetime, timedelta, timezone
import uuid

import pytest
from sqlalchemy import select

from app.models.audit import AuditStatus
from app.models.backlink import Backlink, DiscoveredVia
from app.models.project import Project
from app.services.backlinks import (
    get_backlinks,
    list_project_backlinks,
    parse_rel,
    record_backlinks,
    record_inbound_backlinks,
)
from app.services.crawl_store import save_crawl_result
from app.services.fetcher import HtmlExtractor, SeoData
from fixtures.sample_pages import page_html

T0 = datetime(2026, 1, 9, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def other_project(session_factory):
    async def _make(domain: str = "partner.org") -> Project:
        async with session_factory() as session:
            project = Project(name=domain, base_url=f"https://{domain}/", domain=domain)
            session.add(project)
            await session.commit()
            return project

    return _make


async def crawl_and_record(session_factory, audit_id, url, html):
    """Save a page and index its backlinks in one session, as the crawl worker does."""
    data = SeoData(url=url, final_url=url, status_code=200, content_type="text/html")
    HtmlExtractor("example.com").extract(html, data)
    async with session_factory() as session:
        result = await save_crawl_result(session, audit_id, data)
        written = await record_backlinks(session, result)
        await session.commit()
        return result, written


async def backlinks_of(session_factory, page_id):
    async with session_factory() as session:
        return await get_backlinks(session, page_id)


class TestParseRel:
    """Test rel attribute parsing."""

    def test_plain_link(self):
        assert parse_rel(None) == {"is_dofollow": True, "is_sponsored": False, "is_ugc": False}

    def test_flags(self):
        assert parse_rel("NoFollow sponsored") == {"is_dofollow": False, "is_sponsored": True, "is_ugc": False}
        assert parse_rel("ugc,nofollow") == {"is_dofollow": False, "is_sponsored": False, "is_ugc": True}

    def test_unrelated_tokens(self):
        assert parse_rel("noopener noreferrer")["is_dofollow"] is True


class TestGetBacklinks:
    """Test get_backlinks."""

    @pytest.mark.asyncio
    async def test_missing_page(self, db_session):
        assert await get_backlinks(db_session, uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_no_backlinks(self, project, make_audit, add_page, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        page = await add_page(audit.id, "https://example.com/lonely")

        assert await backlinks_of(session_factory, page.id) == []

    @pytest.mark.asyncio
    async def test_cross_project_defaults(self, project, other_project, make_audit, add_page, session_factory):
        """A link from another project's page counts, with dofollow defaults when unindexed."""
        partner = await other_project()
        own_audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        partner_audit = await make_audit(partner.id, AuditStatus.IN_PROGRESS)
        target = await add_page(own_audit.id, "https://example.com/about")
        source = await add_page(
            partner_audit.id,
            "https://partner.org/friends",
            page_html("Friends", ["https://example.com/about/"]),
            crawled_at=T0,
        )

        entries = await backlinks_of(session_factory, target.id)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.source_page_id == source.id
        assert entry.source_project_id == partner.id
        assert entry.is_dofollow is True
        assert entry.is_sponsored is False
        assert entry.discovered_via == "crawl"
        assert entry.to_dict()["source_url"] == "https://partner.org/friends"

    @pytest.mark.asyncio
    async def test_one_entry_per_source(self, project, make_audit, add_page, session_factory):
        """Repeated links and recrawls of the same source collapse to the newest."""
        first = await make_audit(project.id, AuditStatus.COMPLETED)
        second = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        target = await add_page(second.id, "https://example.com/pricing")
        html = page_html("Home", ["/pricing", "/pricing#plans"])
        await add_page(first.id, "https://example.com/", html, crawled_at=T0)
        newest = await add_page(second.id, "https://example.com/", html, crawled_at=T0 + timedelta(days=7))

        entries = await backlinks_of(session_factory, target.id)

        assert [e.source_page_id for e in entries] == [newest.id]

    @pytest.mark.asyncio
    async def test_self_links_ignored(self, project, make_audit, add_page, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        page = await add_page(audit.id, "https://example.com/loop", page_html("Loop", ["/loop"]))

        assert await backlinks_of(session_factory, page.id) == []

    @pytest.mark.asyncio
    async def test_sorted_newest_first(self, project, make_audit, add_page, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        target = await add_page(audit.id, "https://example.com/target")
        html = page_html("Src", ["/target"])
        old = await add_page(audit.id, "https://example.com/old", html, crawled_at=T0)
        new = await add_page(audit.id, "https://example.com/new", html, crawled_at=T0 + timedelta(hours=1))

        entries = await backlinks_of(session_factory, target.id)

        assert [e.source_page_id for e in entries] == [new.id, old.id]


class TestRecordBacklinks:
    """Test record_backlinks."""

    @pytest.mark.asyncio
    async def test_rel_flags_stored(self, project, other_project, make_audit, add_page, session_factory):
        partner = await other_project()
        own_audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        partner_audit = await make_audit(partner.id, AuditStatus.IN_PROGRESS)
        target = await add_page(own_audit.id, "https://example.com/about")
        html = (
            '<html><body><a href="https://example.com/about" rel="nofollow sponsored">Sponsor</a>'
            '<a href="https://example.com/missing">Missing</a></body></html>'
        )

        source, written = await crawl_and_record(session_factory, partner_audit.id, "https://partner.org/ads", html)

        assert written == 1
        entries = await backlinks_of(session_factory, target.id)
        assert entries[0].is_dofollow is False
        assert entries[0].is_sponsored is True
        assert entries[0].anchor_text == "Sponsor"

        async with session_factory() as session:
            backlink = (await session.execute(select(Backlink))).scalar_one()
        assert backlink.project_id == project.id
        assert backlink.source_page_id == source.id
        assert backlink.target_url == "https://example.com/about"

    @pytest.mark.asyncio
    async def test_recrawl_updates_and_deactivates(self, project, make_audit, add_page, session_factory):
        """A recrawl refreshes existing rows and deactivates links that vanished."""
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        await add_page(audit.id, "https://example.com/a")
        await add_page(audit.id, "https://example.com/b")

        await crawl_and_record(session_factory, audit.id, "https://example.com/", page_html("Home", ["/a", "/b"]))
        second, written = await crawl_and_record(
            session_factory, audit.id, "https://example.com/", page_html("Home", ["/a"])
        )

        assert written == 1
        async with session_factory() as session:
            rows = (await session.execute(select(Backlink).order_by(Backlink.target_url))).scalars().all()
        assert [(r.target_url, r.is_active) for r in rows] == [
            ("https://example.com/a", True),
            ("https://example.com/b", False),
        ]
        assert rows[0].source_page_id == second.id

    @pytest.mark.asyncio
    async def test_no_targets(self, project, make_audit, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)

        _, written = await crawl_and_record(
            session_factory, audit.id, "https://example.com/", page_html("Home", ["/nowhere"])
        )

        assert written == 0


async def crawl_target(session_factory, audit_id, url, html="<html><body>Target</body></html>"):
    """Save a page and run both backlink passes, as the crawl worker does."""
    data = SeoData(url=url, final_url=url, status_code=200, content_type="text/html")
    HtmlExtractor("example.com").extract(html, data)
    async with session_factory() as session:
        result = await save_crawl_result(session, audit_id, data)
        await record_backlinks(session, result)
        created = await record_inbound_backlinks(session, result)
        await session.commit()
        return result, created


async def stored_backlinks(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(Backlink).order_by(Backlink.source_url))).scalars().all()


class TestRecordInboundBacklinks:
    """Test backlinks created when the target is crawled after its sources."""

    @pytest.mark.asyncio
    async def test_earlier_sources_materialized(self, project, other_project, make_audit, session_factory):
        partner = await other_project()
        own_audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        partner_audit = await make_audit(partner.id, AuditStatus.IN_PROGRESS)
        home, written = await crawl_and_record(
            session_factory, own_audit.id, "https://example.com/", page_html("Home", ["/about"])
        )
        friends, _ = await crawl_and_record(
            session_factory,
            partner_audit.id,
            "https://partner.org/friends",
            '<html><body><a href="https://example.com/about" rel="ugc">Them</a></body></html>',
        )
        assert written == 0

        _, created = await crawl_target(session_factory, own_audit.id, "https://example.com/about")

        assert created == 2
        rows = await stored_backlinks(session_factory)
        assert [(r.source_url, r.source_page_id) for r in rows] == [
            ("https://example.com/", home.id),
            ("https://partner.org/friends", friends.id),
        ]
        assert {r.project_id for r in rows} == {project.id}
        assert {r.target_url for r in rows} == {"https://example.com/about"}
        assert rows[1].is_ugc is True
        assert rows[1].anchor_text == "Them"

    @pytest.mark.asyncio
    async def test_recrawl_does_not_duplicate(self, project, make_audit, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        await crawl_and_record(session_factory, audit.id, "https://example.com/", page_html("Home", ["/about"]))
        await crawl_target(session_factory, audit.id, "https://example.com/about")

        _, created = await crawl_target(session_factory, audit.id, "https://example.com/about")

        assert created == 0
        assert len(await stored_backlinks(session_factory)) == 1

    @pytest.mark.asyncio
    async def test_newest_source_crawl_used(self, project, make_audit, add_page, session_factory):
        first = await make_audit(project.id, AuditStatus.COMPLETED)
        second = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        html = page_html("Home", ["/pricing"])
        await add_page(first.id, "https://example.com/", html, crawled_at=T0)
        newest = await add_page(second.id, "https://example.com/", html, crawled_at=T0 + timedelta(days=1))

        _, created = await crawl_target(session_factory, second.id, "https://example.com/pricing")

        assert created == 1
        rows = await stored_backlinks(session_factory)
        assert rows[0].source_page_id == newest.id

    @pytest.mark.asyncio
    async def test_unlinked_page(self, project, make_audit, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)

        _, created = await crawl_target(session_factory, audit.id, "https://example.com/orphan")

        assert created == 0


class TestListProjectBacklinks:
    """Test list_project_backlinks."""

    @pytest.mark.asyncio
    async def test_filters_and_pages(self, project, make_audit, session_factory):
        audit = await make_audit(project.id, AuditStatus.IN_PROGRESS)
        for path in ("a", "b", "c"):
            await crawl_and_record(
                session_factory, audit.id, f"https://example.com/{path}", page_html(path, ["/target"])
            )
        await crawl_target(session_factory, audit.id, "https://example.com/target")
        async with session_factory() as session:
            row = (
                await session.execute(select(Backlink).where(Backlink.source_url == "https://example.com/c"))
            ).scalar_one()
            row.discovered_via = DiscoveredVia.GOOGLE
            await session.commit()

        async with session_factory() as session:
            first_page, total = await list_project_backlinks(session, project.id, page=1, per_page=2)
            crawl_only, crawl_total = await list_project_backlinks(
                session, project.id, discovered_via=DiscoveredVia.CRAWL
            )

        assert total == 3
        assert len(first_page) == 2
        assert crawl_total == 2
        assert {r.source_url for r in crawl_only} == {"https://example.com/a", "https://example.com/b"}
