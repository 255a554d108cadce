"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-01-09

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy stores Python enum member names
AUDIT_STATUSES = ('PENDING', 'PENDING_APPROVAL', 'IN_PROGRESS', 'PAUSED', 'COMPLETED', 'STOPPED', 'FAILED')
LOG_CATEGORIES = ('SETUP', 'FILTERING', 'QUEUED', 'CRAWLED', 'SKIPPED', 'ERROR')
ISSUE_SEVERITIES = ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW', 'INFO')
DISCOVERY_SOURCES = ('CRAWL', 'GOOGLE', 'BING')


def _enum(values, name):
    return postgresql.ENUM(*values, name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(),
                  onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Create enum types
    for values, name in (
        (AUDIT_STATUSES, 'auditstatus'),
        (LOG_CATEGORIES, 'auditlogcategory'),
        (ISSUE_SEVERITIES, 'issueseverity'),
        (DISCOVERY_SOURCES, 'discoveredvia'),
    ):
        labels = ", ".join(f"'{value}'" for value in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({labels})")

    # Projects
    op.create_table(
        'projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('base_url', sa.Text, nullable=False),
        sa.Column('domain', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        *_timestamps(),
    )
    op.create_index('ix_projects_domain', 'projects', ['domain'], unique=True)

    # Domain robots/sitemap cache
    op.create_table(
        'domains',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('domain', sa.String(255), nullable=False),
        sa.Column('base_url', sa.Text),
        sa.Column('robots_txt_url', sa.Text),
        sa.Column('robots_txt_content', sa.Text),
        sa.Column('robots_fetched_at', sa.DateTime(timezone=True)),
        sa.Column('sitemaps', postgresql.JSONB, server_default='[]'),
        sa.Column('crawl_delay', sa.Float),
        *_timestamps(),
    )
    op.create_index('ix_domains_domain', 'domains', ['domain'], unique=True)

    # Audits and their diagnostic log
    op.create_table(
        'audits',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', _enum(AUDIT_STATUSES, 'auditstatus'), nullable=False, server_default='PENDING'),
        sa.Column('seed_urls', postgresql.JSONB, server_default='[]'),
        sa.Column('skip_robots_check', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('pages_crawled', sa.Integer, nullable=False, server_default='0'),
        sa.Column('pages_total', sa.Integer, nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True)),
        sa.Column('paused_at', sa.DateTime(timezone=True)),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('error_message', sa.Text),
        *_timestamps(),
    )
    op.create_index('ix_audits_project_id', 'audits', ['project_id'])
    op.create_index('ix_audits_status', 'audits', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('audit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category', _enum(LOG_CATEGORIES, 'auditlogcategory'), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('details', postgresql.JSONB, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_audit_id', 'audit_logs', ['audit_id'])
    op.create_index('ix_audit_logs_category', 'audit_logs', ['category'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    # Crawl results
    op.create_table(
        'crawl_results',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('audit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('domain_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('domains.id', ondelete='SET NULL')),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('normalized_url', sa.Text, nullable=False),
        sa.Column('final_url', sa.Text),
        sa.Column('status_code', sa.Integer),
        sa.Column('content_type', sa.String(255)),
        sa.Column('title', sa.Text),
        sa.Column('meta_description', sa.Text),
        sa.Column('meta_keywords', sa.Text),
        sa.Column('meta_robots', sa.String(255)),
        sa.Column('canonical_url', sa.Text),
        sa.Column('language', sa.String(35)),
        sa.Column('response_time_ms', sa.Integer),
        sa.Column('content_length', sa.Integer),
        sa.Column('redirect_chain', postgresql.JSONB, server_default='[]'),
        sa.Column('redirect_count', sa.Integer, server_default='0'),
        sa.Column('http_headers', postgresql.JSONB, server_default='{}'),
        sa.Column('structured_data', postgresql.JSONB, server_default='[]'),
        sa.Column('word_count', sa.Integer, server_default='0'),
        sa.Column('content_hash', sa.String(64)),
        sa.Column('completeness_score', sa.Float),
        sa.Column('h1_count', sa.Integer, server_default='0'),
        sa.Column('h2_count', sa.Integer, server_default='0'),
        sa.Column('h3_count', sa.Integer, server_default='0'),
        sa.Column('internal_links_count', sa.Integer, server_default='0'),
        sa.Column('external_links_count', sa.Integer, server_default='0'),
        sa.Column('images_count', sa.Integer, server_default='0'),
        sa.Column('images_with_alt_count', sa.Integer, server_default='0'),
        sa.Column('extraction_errors', postgresql.JSONB, server_default='[]'),
        sa.Column('crawl_depth', sa.Integer, server_default='0'),
        sa.Column('crawled_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_crawl_results_audit_id', 'crawl_results', ['audit_id'])
    op.create_index('ix_crawl_results_normalized_url', 'crawl_results', ['normalized_url'])
    op.create_index('ix_crawl_results_crawled_at', 'crawl_results', ['crawled_at'])
    op.create_index('ix_crawl_results_audit_content_hash', 'crawl_results', ['audit_id', 'content_hash'])
    op.create_index('ix_crawl_results_audit_normalized_url', 'crawl_results', ['audit_id', 'normalized_url'])

    op.create_table(
        'headings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('crawl_result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level', sa.Integer, nullable=False),
        sa.Column('text', sa.Text, nullable=False),
        sa.Column('position', sa.Integer, nullable=False),
    )
    op.create_index('ix_headings_crawl_result_id', 'headings', ['crawl_result_id'])

    op.create_table(
        'images',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('crawl_result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('src', sa.Text, nullable=False),
        sa.Column('alt', sa.Text),
        sa.Column('title', sa.Text),
        sa.Column('width', sa.String(32)),
        sa.Column('height', sa.String(32)),
        sa.Column('position', sa.Integer, nullable=False),
    )
    op.create_index('ix_images_crawl_result_id', 'images', ['crawl_result_id'])

    op.create_table(
        'links',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('crawl_result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('href', sa.Text, nullable=False),
        sa.Column('normalized_href', sa.Text, nullable=False),
        sa.Column('text', sa.Text),
        sa.Column('rel', sa.String(255)),
        sa.Column('is_external', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('position', sa.Integer, nullable=False),
    )
    op.create_index('ix_links_crawl_result_id', 'links', ['crawl_result_id'])
    op.create_index('ix_links_normalized_href', 'links', ['normalized_href'])

    op.create_table(
        'og_tags',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('crawl_result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('title', sa.Text),
        sa.Column('description', sa.Text),
        sa.Column('image', sa.Text),
        sa.Column('type', sa.String(100)),
        sa.Column('url', sa.Text),
    )

    op.create_table(
        'issues',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('audit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('crawl_result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('severity', _enum(ISSUE_SEVERITIES, 'issueseverity'), nullable=False, server_default='MEDIUM'),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('recommendation', sa.Text),
        sa.Column('details', postgresql.JSONB, server_default='{}'),
        *_timestamps(),
    )
    op.create_index('ix_issues_audit_id', 'issues', ['audit_id'])
    op.create_index('ix_issues_crawl_result_id', 'issues', ['crawl_result_id'])

    # Backlinks
    op.create_table(
        'backlinks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_page_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('crawl_results.id', ondelete='CASCADE'), nullable=False),
        sa.Column('link_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('links.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_url', sa.Text, nullable=False),
        sa.Column('target_url', sa.Text, nullable=False),
        sa.Column('anchor_text', sa.Text),
        sa.Column('is_dofollow', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('is_sponsored', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('is_ugc', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('discovered_via', _enum(DISCOVERY_SOURCES, 'discoveredvia'), nullable=False,
                  server_default='CRAWL'),
        sa.Column('discovered_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('link_position', sa.Integer),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'source_page_id', 'link_id', name='uq_backlinks_project_source_link'),
    )
    op.create_index('ix_backlinks_project_id', 'backlinks', ['project_id'])
    op.create_index('ix_backlinks_source_page_id', 'backlinks', ['source_page_id'])
    op.create_index('ix_backlinks_link_id', 'backlinks', ['link_id'])
    op.create_index('ix_backlinks_source_url', 'backlinks', ['source_url'])
    op.create_index('ix_backlinks_target_url', 'backlinks', ['target_url'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('backlinks')
    op.drop_table('issues')
    op.drop_table('og_tags')
    op.drop_table('links')
    op.drop_table('images')
    op.drop_table('headings')
    op.drop_table('crawl_results')
    op.drop_table('audit_logs')
    op.drop_table('audits')
    op.drop_table('domains')
    op.drop_table('projects')

    # Drop enum types
    op.execute('DROP TYPE IF EXISTS discoveredvia')
    op.execute('DROP TYPE IF EXISTS issueseverity')
    op.execute('DROP TYPE IF EXISTS auditlogcategory')
    op.execute('DROP TYPE IF EXISTS auditstatus')
