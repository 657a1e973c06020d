"""마켓 가격 조회 서비스 - 논리 아이템의 대표 가격"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from src.core.exceptions import CacheException
from src.core.logging import logger
from src.engine.resolver import PreferenceResolver
from src.repositories.impl.price_cache_repository import PriceCacheRepository
from src.schemas.market_schema import ResolvedPriceResponse
from src.services.impl.cache_service import CacheService
from src.utils.clock import utcnow


class MarketPriceService:
    """
    대표 가격 조회 - Cache-First 전략

    1. Redis resolved price 캐시 확인
    2. 미스 시 프로바이더별 최신가 행을 PreferenceResolver로 선택
    3. 결과 캐싱 (실패해도 응답에는 영향 없음)
    """

    def __init__(
        self,
        db: Session,
        cache_service: Optional[CacheService] = None,
        staleness_hours: int = 24,
    ):
        self.prices = PriceCacheRepository(db)
        self.cache_service = cache_service
        self.staleness_hours = staleness_hours
        self.resolver = PreferenceResolver()

    def get_resolved(
        self,
        sku: str,
        size: str,
        currency: str,
        now: Optional[datetime] = None,
    ) -> Optional[ResolvedPriceResponse]:
        """
        (sku, size, currency)의 대표 가격

        Returns:
            ResolvedPriceResponse 또는 None (스냅샷 없음)
        """
        now = now or utcnow()
        currency = currency.upper()

        cached = self._cache_get(sku, size, currency)
        if cached is not None:
            return cached.model_copy(update={
                "is_stale": self.prices.is_stale(cached.as_of, self.staleness_hours, now),
                "source": "cache",
            })

        rows = self.prices.get_latest_for_item(sku, size, currency)
        best = self.resolver.resolve(self.prices.to_snapshot(row) for row in rows)
        if best is None:
            logger.info(f"No market snapshot for {sku} {size} {currency}")
            return None

        resolved = ResolvedPriceResponse(
            sku=sku,
            size=size,
            currency=best.currency,
            provider=best.provider,
            item_key=best.item_key,
            lowest_ask=best.lowest_ask,
            highest_bid=best.highest_bid,
            last_sale=best.last_sale,
            market_price=best.market_price,
            as_of=best.as_of,
            is_stale=self.prices.is_stale(best.as_of, self.staleness_hours, now),
            source="db",
        )
        self._cache_set(resolved)
        return resolved

    def _cache_get(self, sku: str, size: str, currency: str) -> Optional[ResolvedPriceResponse]:
        if self.cache_service is None:
            return None
        try:
            return self.cache_service.get(sku, size, currency)
        except CacheException as e:
            logger.warning(f"Resolved cache read skipped: {e}")
            return None

    def _cache_set(self, resolved: ResolvedPriceResponse) -> None:
        if self.cache_service is None:
            return
        try:
            self.cache_service.set(resolved)
        except CacheException as e:
            logger.warning(f"Resolved cache write skipped: {e}")
