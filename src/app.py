"""market-sync FastAPI 앱 (lifespan에서 캐시, 어댑터, 스케줄러 구성)"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from src.core.config import settings
from src.core.database import init_db
from src.core.exceptions import (
    AuthenticationException,
    DatabaseException,
    MarketSyncException,
    SchedulerRunException,
    ValidationException,
)
from src.core.logging import logger
from src.api import health_router, market_router, scheduler_router, webhook_router
from src.providers import build_registry
from src.providers.http_client import shutdown_shared_http_client
from src.services.impl.alert_channel import AlertChannel
from src.services.impl.cache_service import build_cache_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """DB 초기화 → 컴포넌트 구성 → (옵션) 주기 동기화 시작"""
    logger.info(f"[App] Starting market-sync {settings.api_version}")
    init_db()

    app.state.alerts = AlertChannel()
    app.state.cache_service = build_cache_service(settings.redis_url, settings.resolved_cache_ttl)
    app.state.adapters = build_registry(
        settings.provider_base_urls,
        settings.provider_tokens,
        settings.scheduler_fetch_timeout_s,
    )
    logger.info(f"[App] Provider adapters: {app.state.adapters.providers()}")

    scheduler = None
    if settings.scheduler_enabled:
        from src.scheduler.market_sync import MarketSyncScheduler

        scheduler = MarketSyncScheduler.schedule_with_apscheduler(
            app.state.adapters, app.state.cache_service, app.state.alerts
        )
        scheduler.start()

    logger.info(f"[App] Ready (scheduler_enabled={settings.scheduler_enabled})")
    yield
    logger.info("[App] Shutting down")
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await shutdown_shared_http_client()


# 도메인 예외 → HTTP 상태 (먼저 일치하는 항목 사용)
ERROR_STATUS: tuple[tuple[type[MarketSyncException], int], ...] = (
    (AuthenticationException, 401),
    (ValidationException, 422),
    (SchedulerRunException, 500),
    (DatabaseException, 500),
)


def register_exception_handlers(app: FastAPI) -> None:
    """도메인 예외를 {"status": "fail", "error_code", "message"} 응답으로 변환"""

    async def _handle(request: Request, exc: MarketSyncException) -> JSONResponse:
        status_code = next(code for exc_type, code in ERROR_STATUS if isinstance(exc, exc_type))
        if status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"status": "fail", "error_code": exc.error_code, "message": exc.message},
        )

    for exc_type, _ in ERROR_STATUS:
        app.add_exception_handler(exc_type, _handle)


def create_app() -> FastAPI:
    """앱 팩토리. 테스트는 create_app() 후 dependency_overrides로 DB/어댑터를 교체"""
    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan
    )

    # 운영 대시보드 조회용 (쿠키 인증 없음)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # health → scheduler → market → webhooks
    app.include_router(health_router)
    app.include_router(scheduler_router)
    app.include_router(market_router)
    app.include_router(webhook_router)

    return app

# uvicorn src.app:app
app = create_app()
