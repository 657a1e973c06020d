"""비즈니스 로직 서비스 - export only."""

from .impl import AlertChannel, CacheService, MarketPriceService, WebhookService, build_cache_service

__all__ = ["AlertChannel", "CacheService", "MarketPriceService", "WebhookService", "build_cache_service"]
