"""Alembic 마이그레이션: 마켓 동기화 테이블 추가"""
from alembic import op
import sqlalchemy as sa

revision = "0001_market_sync"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_JOB_PREDICATE = sa.text("status IN ('pending', 'running')")


def upgrade():
    """잡 큐 / 예산 / 가격 캐시 / 이력 / 실행 기록 / 웹훅 테이블 생성"""
    op.create_table(
        'market_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('item_key', sa.String(100), nullable=False),
        sa.Column('size', sa.String(20), nullable=False, server_default=''),
        sa.Column('dedupe_key', sa.String(160), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('not_before', sa.DateTime(), nullable=True),
        sa.Column('last_run_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_jobs_provider', 'market_jobs', ['provider'])
    op.create_index('ix_market_jobs_ready', 'market_jobs', ['status', 'priority', 'created_at'])
    # identity 당 활성(pending/running) 잡은 최대 1개
    op.create_index(
        'uq_market_jobs_active_identity',
        'market_jobs',
        ['dedupe_key'],
        unique=True,
        postgresql_where=ACTIVE_JOB_PREDICATE,
        sqlite_where=ACTIVE_JOB_PREDICATE,
    )

    op.create_table(
        'market_budgets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('hour_window', sa.DateTime(), nullable=False),
        sa.Column('rate_limit', sa.Integer(), nullable=False),
        sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'hour_window', name='uq_market_budgets_provider_window')
    )

    op.create_table(
        'market_latest_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_key', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('lowest_ask', sa.Numeric(12, 2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_sale', sa.Numeric(12, 2), nullable=True),
        sa.Column('as_of', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_key', 'currency', name='uq_market_latest_item_currency')
    )
    op.create_index('ix_market_latest_sku_size', 'market_latest_prices', ['sku', 'size', 'currency'])

    op.create_table(
        'market_price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fingerprint', sa.String(64), nullable=False),
        sa.Column('item_key', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('lowest_ask', sa.Numeric(12, 2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_sale', sa.Numeric(12, 2), nullable=True),
        sa.Column('as_of', sa.DateTime(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fingerprint')
    )
    op.create_index('ix_market_price_history_item_key', 'market_price_history', ['item_key'])
    op.create_index('ix_market_history_item_asof', 'market_price_history', ['item_key', 'currency', 'as_of'])

    op.create_table(
        'market_job_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('dry_run', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('jobs_selected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jobs_succeeded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jobs_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jobs_deferred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jobs_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jobs_reclaimed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_variants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('run_id')
    )
    op.create_index('ix_market_job_runs_started_at', 'market_job_runs', ['started_at'])

    op.create_table(
        'market_provider_metrics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('run_id', sa.String(36), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('succeeded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deferred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_provider_metrics_run_id', 'market_provider_metrics', ['run_id'])
    op.create_index('ix_market_provider_metrics_provider', 'market_provider_metrics', ['provider', 'created_at'])

    op.create_table(
        'tracked_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('item_key', sa.String(100), nullable=False),
        sa.Column('size', sa.String(20), nullable=False, server_default=''),
        sa.Column('tier', sa.String(10), nullable=False, server_default='cold'),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'item_key', 'size', name='uq_tracked_products_identity')
    )

    op.create_table(
        'provider_listings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('listing_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('orphaned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_event_id', sa.String(100), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'listing_id', name='uq_provider_listings_identity')
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(100), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('event_created_at', sa.DateTime(), nullable=True),
        sa.Column('outcome', sa.String(20), nullable=False, server_default='processed'),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id')
    )


def downgrade():
    """테이블 삭제"""
    op.drop_table('webhook_events')
    op.drop_table('provider_listings')
    op.drop_table('tracked_products')
    op.drop_index('ix_market_provider_metrics_provider', table_name='market_provider_metrics')
    op.drop_index('ix_market_provider_metrics_run_id', table_name='market_provider_metrics')
    op.drop_table('market_provider_metrics')
    op.drop_index('ix_market_job_runs_started_at', table_name='market_job_runs')
    op.drop_table('market_job_runs')
    op.drop_index('ix_market_history_item_asof', table_name='market_price_history')
    op.drop_index('ix_market_price_history_item_key', table_name='market_price_history')
    op.drop_table('market_price_history')
    op.drop_index('ix_market_latest_sku_size', table_name='market_latest_prices')
    op.drop_table('market_latest_prices')
    op.drop_table('market_budgets')
    op.drop_index('uq_market_jobs_active_identity', table_name='market_jobs')
    op.drop_index('ix_market_jobs_ready', table_name='market_jobs')
    op.drop_index('ix_market_jobs_provider', table_name='market_jobs')
    op.drop_table('market_jobs')
