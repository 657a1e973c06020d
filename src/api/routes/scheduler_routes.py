"""Scheduler Routes - 스케줄러 트리거 및 운영 도구

HTTP Layer는 Engine Layer로 요청을 위임하는 Translator 역할만 수행합니다.
모든 엔드포인트는 X-Scheduler-Secret 헤더가 필요합니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.api.dependencies import get_orchestrator
from src.core.database import get_db
from src.core.logging import logger
from src.core.security import require_scheduler_secret
from src.engine.orchestrator import SyncOrchestrator
from src.repositories.impl.job_repository import JobRepository
from src.repositories.impl.run_repository import RunRepository
from src.schemas.market_schema import (
    EnqueueJobRequest,
    EnqueueJobResponse,
    JobResetResponse,
    JobRunListResponse,
    JobRunRecord,
    SchedulerRunRequest,
    SchedulerRunResponse,
)

router = APIRouter(
    prefix="/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(require_scheduler_secret)],
)


@router.post("/run", response_model=SchedulerRunResponse)
async def run_scheduler(
    body: Optional[SchedulerRunRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SchedulerRunResponse:
    """
    스케줄러 1회 실행

    Body (optional): {"batchSize": 20, "dryRun": false}
    Returns: {synced, errors, totalVariants, durationMs}
    """
    body = body or SchedulerRunRequest()
    summary = await orchestrator.run(batch_size=body.batch_size, dry_run=body.dry_run)
    return SchedulerRunResponse(
        run_id=summary.run_id,
        synced=summary.synced,
        errors=summary.errors,
        deferred=summary.deferred,
        skipped=summary.skipped,
        total_variants=summary.total_variants,
        duration_ms=summary.duration_ms,
        dry_run=summary.dry_run,
    )


@router.post("/jobs/reset", response_model=JobResetResponse)
async def reset_failed_jobs(db: Session = Depends(get_db)) -> JobResetResponse:
    """terminal failed 잡을 pending으로 되돌림 (retry_count=0)"""
    reset = JobRepository(db).reset_failed()
    logger.info(f"[API] Reset {reset} failed job(s)")
    return JobResetResponse(reset=reset)


@router.post("/jobs", response_model=EnqueueJobResponse)
async def enqueue_job(
    request: EnqueueJobRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> EnqueueJobResponse:
    """온디맨드 동기화 요청 (manual priority, 중복 요청은 no-op)"""
    priority = orchestrator.config.priority_manual
    created = orchestrator.enqueue(request.provider, request.item_key, request.size, priority)
    return EnqueueJobResponse(created=created, priority=priority)


@router.get("/runs", response_model=JobRunListResponse)
async def list_runs(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> JobRunListResponse:
    """최근 실행 기록"""
    runs = RunRepository(db).get_recent(limit)
    return JobRunListResponse(runs=[JobRunRecord.model_validate(run) for run in runs])
