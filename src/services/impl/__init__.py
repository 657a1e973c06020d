"""Services implementation package."""

from .alert_channel import AlertChannel
from .cache_service import CacheService, build_cache_service
from .market_price_service import MarketPriceService
from .webhook_service import WebhookService

__all__ = ["AlertChannel", "CacheService", "MarketPriceService", "WebhookService", "build_cache_service"]
