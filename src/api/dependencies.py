"""FastAPI 의존성 - 앱 수명주기에서 생성한 컴포넌트 주입"""
from typing import Any, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from src.core.config import settings
from src.core.database import get_db
from src.engine.orchestrator import SyncOrchestrator
from src.services.impl.alert_channel import AlertChannel
from src.services.impl.cache_service import CacheService
from src.services.impl.market_price_service import MarketPriceService
from src.services.impl.webhook_service import WebhookService


def get_cache_service(request: Request) -> Optional[CacheService]:
    """resolved price 캐시 (Redis 미설정 시 None)"""
    return getattr(request.app.state, "cache_service", None)


def get_adapters(request: Request) -> Any:
    """프로바이더 어댑터 레지스트리"""
    return getattr(request.app.state, "adapters", {})


def get_alerts(request: Request) -> AlertChannel:
    alerts = getattr(request.app.state, "alerts", None)
    if alerts is None:
        alerts = AlertChannel()
        request.app.state.alerts = alerts
    return alerts


def get_orchestrator(
    db: Session = Depends(get_db),
    adapters: Any = Depends(get_adapters),
    cache_service: Optional[CacheService] = Depends(get_cache_service),
    alerts: AlertChannel = Depends(get_alerts),
) -> SyncOrchestrator:
    """요청 단위 SyncOrchestrator"""
    return SyncOrchestrator(db, adapters=adapters, cache_service=cache_service, alerts=alerts)


def get_market_price_service(
    db: Session = Depends(get_db),
    cache_service: Optional[CacheService] = Depends(get_cache_service),
) -> MarketPriceService:
    return MarketPriceService(db, cache_service, staleness_hours=settings.market_staleness_hours)


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    return WebhookService(db, provider="alias", orphan_policy=settings.orphan_listing_policy)
