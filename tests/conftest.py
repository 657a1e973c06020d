"""전역 테스트 설정

역할:
- 테스트 환경 변수 (src import 전에 설정)
- in-memory SQLite 세션
- Fake 프로바이더 어댑터 / 고정 시각
"""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest

# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["SCHEDULER_SECRET"] = "test-scheduler-secret"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["SCHEDULER_ENABLED"] = "false"

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.core.config import Settings  # noqa: E402
from src.core.database import Base  # noqa: E402
import src.repositories.models  # noqa: E402,F401


FIXED_NOW = datetime(2025, 1, 10, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    """정시 직후 고정 시각 (같은 예산 윈도우 안에서 여러 번 실행 가능)"""
    return FIXED_NOW


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_engine):
    """테스트 전용 DB 세션"""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_settings() -> Settings:
    """오케스트레이터 테스트 설정"""
    return Settings(
        database_url="sqlite://",
        provider_rate_limits={"stockx": 100, "alias": 200, "ebay": 150, "seed": 1000},
        scheduler_batch_size=20,
        scheduler_concurrency=3,
        scheduler_max_retries=3,
        scheduler_fetch_timeout_s=5.0,
    )


Response = Union[Any, Exception, Callable[[str, str], Any]]


class FakeAdapter:
    """테스트용 프로바이더 어댑터

    - responses: item_key → 페이로드 / 예외 / (item_key, size) 호출 가능 객체
    - default: 등록되지 않은 키에 대한 응답
    - delay: fetch 지연 (초)
    """

    def __init__(self, responses: Optional[dict[str, Response]] = None,
                 default: Response = None, delay: float = 0.0):
        self.responses = responses or {}
        self.default = default
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, item_key: str, size: str) -> Any:
        self.calls.append((item_key, size))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(item_key, self.default)
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(item_key, size)
            return response
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_adapter_factory():
    return FakeAdapter


def stockx_variants(style_id: str = "DD1391-100", size: str = "10",
                    ask: str = "145.00", bid: str = "130.00",
                    snapshot_at: str = "2025-01-10T11:30:00Z") -> dict:
    """StockX 마켓 데이터 응답 (major unit 문자열)"""
    return {
        "productId": "prod-1",
        "styleId": style_id,
        "variants": [
            {
                "variantId": f"var-{size}",
                "variantValue": size,
                "lowestAskAmount": ask,
                "highestBidAmount": bid,
                "lastSaleAmount": "140.00",
                "currencyCode": "USD",
                "snapshotAt": snapshot_at,
            },
            {
                "variantId": "var-11",
                "variantValue": "11",
                "lowestAskAmount": "160.00",
                "highestBidAmount": None,
                "currencyCode": "USD",
                "snapshotAt": snapshot_at,
            },
        ],
    }


def alias_variant(catalog_id: str = "air-force-1-low-white-dd1391-100", size: Union[str, float] = 10,
                  lowest_cents: Optional[str] = "14200", offer_cents: Optional[str] = "12500",
                  region_id: str = "1", sku: str = "DD1391-100",
                  snapshot_at: str = "2025-01-10T11:45:00Z") -> dict:
    """Alias 가격 응답 (cents 문자열)"""
    return {
        "catalog_id": catalog_id,
        "sku": sku,
        "size": size,
        "product_condition": "PRODUCT_CONDITION_NEW",
        "packaging_condition": "PACKAGING_CONDITION_GOOD_CONDITION",
        "consigned": False,
        "region_id": region_id,
        "availability": {
            "lowest_listing_price_cents": lowest_cents,
            "highest_offer_price_cents": offer_cents,
            "last_sold_listing_price_cents": None,
        },
        "snapshot_at": snapshot_at,
    }
