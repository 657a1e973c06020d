"""API 엔드포인트 패키지 - export only."""

from .routes import health_router, market_router, scheduler_router, webhook_router

__all__ = ["health_router", "market_router", "scheduler_router", "webhook_router"]
