"""데이터베이스 모델"""
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)

from src.core.database import Base
from src.utils.clock import utcnow


class JobStatus(str, Enum):
    """잡 상태

    pending/running 만 활성 상태이며 identity 당 하나만 존재할 수 있습니다.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # NotFound: 데이터 없음으로 종료


ACTIVE_JOB_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)

_ACTIVE_JOB_PREDICATE = text("status IN ('pending', 'running')")


def canonical_provider(provider: str) -> str:
    """저장 컬럼용 프로바이더 키 ("StockX" → "stockx")"""
    from src.engine.providers import provider_key

    return provider_key(provider)


def job_dedupe_key(provider: str, item_key: str, size: str) -> str:
    """잡 identity (provider, item_key, size) → 중복 방지 키"""
    return f"{canonical_provider(provider)}|{item_key}|{size}"


class MarketJob(Base):
    """마켓 데이터 동기화 잡 큐"""

    __tablename__ = "market_jobs"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False, index=True)
    item_key = Column(String(100), nullable=False)
    size = Column(String(20), nullable=False, default="")
    dedupe_key = Column(String(160), nullable=False)
    priority = Column(Integer, nullable=False, default=100)
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    not_before = Column(DateTime, nullable=True)  # 백오프/연기 시각
    last_run_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # identity 당 활성(pending/running) 잡은 최대 1개
        Index(
            "uq_market_jobs_active_identity",
            "dedupe_key",
            unique=True,
            postgresql_where=_ACTIVE_JOB_PREDICATE,
            sqlite_where=_ACTIVE_JOB_PREDICATE,
        ),
        Index("ix_market_jobs_ready", "status", "priority", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<MarketJob(id={self.id}, key={self.dedupe_key}, status={self.status})>"


class MarketBudget(Base):
    """프로바이더별 시간당 호출 예산 (token bucket)"""

    __tablename__ = "market_budgets"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)
    hour_window = Column(DateTime, nullable=False)  # 정시 버킷 시작
    rate_limit = Column(Integer, nullable=False)
    used = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("provider", "hour_window", name="uq_market_budgets_provider_window"),
    )

    def __repr__(self) -> str:
        return f"<MarketBudget(provider={self.provider}, window={self.hour_window}, used={self.used}/{self.rate_limit})>"


class MarketLatestPrice(Base):
    """최신 스냅샷 캐시 - (item_key, currency) 당 1행"""

    __tablename__ = "market_latest_prices"

    id = Column(Integer, primary_key=True, index=True)
    item_key = Column(String(255), nullable=False)
    currency = Column(String(3), nullable=False)
    provider = Column(String(20), nullable=False)
    sku = Column(String(100), nullable=True)
    size = Column(String(20), nullable=True)
    lowest_ask = Column(Numeric(12, 2), nullable=True)
    highest_bid = Column(Numeric(12, 2), nullable=True)
    last_sale = Column(Numeric(12, 2), nullable=True)
    as_of = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("item_key", "currency", name="uq_market_latest_item_currency"),
        Index("ix_market_latest_sku_size", "sku", "size", "currency"),
    )

    def __repr__(self) -> str:
        return f"<MarketLatestPrice(item_key={self.item_key}, currency={self.currency}, as_of={self.as_of})>"


class MarketPriceHistory(Base):
    """가격 이력 (append-only)

    - fingerprint: (item_key, currency, 가격 튜플, as_of) 자연키 해시
    """

    __tablename__ = "market_price_history"

    id = Column(Integer, primary_key=True, index=True)
    fingerprint = Column(String(64), nullable=False, unique=True)
    item_key = Column(String(255), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    provider = Column(String(20), nullable=False)
    sku = Column(String(100), nullable=True)
    size = Column(String(20), nullable=True)
    lowest_ask = Column(Numeric(12, 2), nullable=True)
    highest_bid = Column(Numeric(12, 2), nullable=True)
    last_sale = Column(Numeric(12, 2), nullable=True)
    as_of = Column(DateTime, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_market_history_item_asof", "item_key", "currency", "as_of"),
    )

    def __repr__(self) -> str:
        return f"<MarketPriceHistory(id={self.id}, item_key={self.item_key}, as_of={self.as_of})>"


class MarketJobRun(Base):
    """스케줄러 실행 기록"""

    __tablename__ = "market_job_runs"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(String(36), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default="running")  # running, completed, failed
    dry_run = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    jobs_selected = Column(Integer, nullable=False, default=0)
    jobs_succeeded = Column(Integer, nullable=False, default=0)
    jobs_failed = Column(Integer, nullable=False, default=0)
    jobs_deferred = Column(Integer, nullable=False, default=0)
    jobs_skipped = Column(Integer, nullable=False, default=0)
    jobs_reclaimed = Column(Integer, nullable=False, default=0)
    total_variants = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<MarketJobRun(run_id={self.run_id}, status={self.status})>"


class MarketProviderMetric(Base):
    """실행별 프로바이더 배치 지표"""

    __tablename__ = "market_provider_metrics"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)
    run_id = Column(String(36), nullable=False, index=True)
    batch_size = Column(Integer, nullable=False, default=0)
    succeeded = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    deferred = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_market_provider_metrics_provider", "provider", "created_at"),
    )


class TrackedProduct(Base):
    """동기화 대상 (provider, item_key, size) 와 티어

    tier는 외부 비즈니스 로직(판매 속도 등)이 관리하며 여기서는 읽기 전용입니다.
    """

    __tablename__ = "tracked_products"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)
    item_key = Column(String(100), nullable=False)
    size = Column(String(20), nullable=False, default="")
    tier = Column(String(10), nullable=False, default="cold")
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("provider", "item_key", "size", name="uq_tracked_products_identity"),
    )

    def __repr__(self) -> str:
        return f"<TrackedProduct(provider={self.provider}, item_key={self.item_key}, size={self.size}, tier={self.tier})>"


class ProviderListing(Base):
    """웹훅으로 갱신되는 프로바이더 리스팅 상태

    - orphaned: 로컬에 없던 리스팅 (수동 검토 대상, 자동 import 하지 않음)
    """

    __tablename__ = "provider_listings"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)
    listing_id = Column(String(100), nullable=False)
    status = Column(String(50), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    orphaned = Column(Boolean, nullable=False, default=False)
    last_event_id = Column(String(100), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("provider", "listing_id", name="uq_provider_listings_identity"),
    )


class WebhookEvent(Base):
    """수신한 웹훅 이벤트 (event id 기준 멱등 처리)"""

    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(100), nullable=False, unique=True)
    provider = Column(String(20), nullable=False)
    event_type = Column(String(50), nullable=False)
    event_created_at = Column(DateTime, nullable=True)
    outcome = Column(String(20), nullable=False, default="processed")  # processed, recorded, ignored, orphaned, rejected
    received_at = Column(DateTime, nullable=False, default=utcnow)
