"""API routes package."""

from .health_routes import router as health_router
from .market_routes import router as market_router
from .scheduler_routes import router as scheduler_router
from .webhook_routes import router as webhook_router

__all__ = ["health_router", "market_router", "scheduler_router", "webhook_router"]
