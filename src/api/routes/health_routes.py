"""헬스 체크 엔드포인트"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.schemas.market_schema import HealthResponse
from src.services.impl.cache_service import CacheService
from src.api.dependencies import get_cache_service
from src.core.config import settings
from src.core.database import get_db, ping_database
from src.engine.budget import BudgetLedger
from src.repositories.impl.budget_repository import BudgetRepository
from src.repositories.impl.job_repository import JobRepository
from src.utils.clock import utcnow
from src import __version__

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    cache_service: Optional[CacheService] = Depends(get_cache_service),
    db: Session = Depends(get_db),
):
    """
    헬스 체크 엔드포인트

    - DB 연결 상태
    - Redis 연결 상태 (설정된 경우에만)
    """
    db_ok = ping_database(db)
    redis_ok = cache_service is None or cache_service.health_check()

    if db_ok and redis_ok:
        status = "ok"
    elif db_ok:
        status = "degraded"
    else:
        status = "error"

    return HealthResponse(
        status=status,
        timestamp=utcnow(),
        version=__version__
    )


@router.get("/health/jobs")
async def job_stats(db: Session = Depends(get_db)):
    """상태별 잡 수 + 현재 시간 윈도우 프로바이더별 예산"""
    ledger = BudgetLedger(BudgetRepository(db), settings.provider_rate_limits)
    return {
        "jobs": JobRepository(db).count_by_status(),
        "budgets": ledger.get_report(),
    }


@router.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "service": "market-sync",
        "version": __version__,
        "docs": "/docs"
    }
