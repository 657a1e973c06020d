"""Sync Orchestrator - Market Data Scheduler Entry Point

Coordinates one bounded scheduler run:
1. Stale-running sweep (crash recovery)
2. Tier Classifier → enqueue eligible keys
3. Batch selection filtered by remaining provider budget
4. Sequential claim + budget reservation
5. Concurrent dispatch (bounded, all-settled)
6. Outcome recording and run record
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from time import perf_counter
from typing import Any, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from src.core.config import Settings, settings as default_settings
from src.core.exceptions import CacheException, DatabaseException, SchedulerRunException
from src.core.logging import logger, sanitize_for_log
from src.repositories.impl.budget_repository import BudgetRepository
from src.repositories.impl.job_repository import JobRepository
from src.repositories.impl.price_cache_repository import PriceCacheRepository
from src.repositories.impl.run_repository import RunRepository
from src.repositories.impl.tracked_product_repository import TrackedProductRepository
from src.repositories.models import MarketJob, job_dedupe_key
from src.services.impl.alert_channel import AlertChannel
from src.utils.clock import utcnow

from .budget import BudgetLedger
from .exceptions import TransientError
from .normalizer import Normalizer
from .result import DispatchResult, RunSummary
from .strategy import JobOutcome, RetryStrategy
from .tiers import TierClassifier


@dataclass(frozen=True)
class ClaimedJob:
    """선점된 잡의 디스패치 시점 스냅샷"""

    id: int
    provider: str
    item_key: str
    size: str
    retry_count: int

    @classmethod
    def from_row(cls, job: MarketJob) -> "ClaimedJob":
        return cls(
            id=job.id,
            provider=job.provider,
            item_key=job.item_key,
            size=job.size or "",
            retry_count=job.retry_count or 0,
        )


class SyncOrchestrator:
    """마켓 데이터 동기화 오케스트레이터

    단일 DB 세션을 사용합니다. 모든 DB 호출은 동기이며 await 지점은
    어댑터 fetch뿐이므로, 동시 디스패치 중에도 세션 접근이 겹치지 않습니다.

    Usage:
        orchestrator = SyncOrchestrator(db, adapters=registry, cache_service=cache)
        summary = await orchestrator.run(batch_size=20)
    """

    def __init__(
        self,
        db: Session,
        adapters: Any,
        cache_service=None,
        alerts: Optional[AlertChannel] = None,
        config: Optional[Settings] = None,
        normalizer: Optional[Normalizer] = None,
    ):
        """
        Args:
            db: DB 세션
            adapters: 프로바이더 → 어댑터 (get/iteration 지원, 예: AdapterRegistry)
            cache_service: resolved price 캐시 (없으면 invalidate 생략)
            alerts: 알림 채널
            config: 설정 (기본값: 전역 settings)
            normalizer: 정규화기
        """
        if adapters is None:
            raise ValueError("adapters must not be None")

        self.config = config or default_settings
        self.adapters = adapters
        self.cache = cache_service
        self.alerts = alerts or AlertChannel()
        self.normalizer = normalizer or Normalizer()

        self.jobs = JobRepository(db)
        self.prices = PriceCacheRepository(db)
        self.runs = RunRepository(db)
        self.tracked = TrackedProductRepository(db)
        self.ledger = BudgetLedger(BudgetRepository(db), self.config.provider_rate_limits)
        self.classifier = TierClassifier(
            self.tracked,
            intervals_hours=self.config.tier_intervals_hours,
            priority_hot=self.config.priority_hot,
            priority_background=self.config.priority_background,
        )
        self.strategy = RetryStrategy(
            max_retries=self.config.scheduler_max_retries,
            backoff_base_minutes=self.config.scheduler_backoff_base_minutes,
            backoff_factor=self.config.scheduler_backoff_factor,
        )

    # ------------------------------------------------------------------
    # enqueue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        provider: str,
        item_key: str,
        size: str = "",
        priority: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """온디맨드 동기화 요청 (기본 우선순위: manual)

        Returns:
            새 잡 생성 여부
        """
        priority = self.config.priority_manual if priority is None else priority
        created = self.jobs.enqueue(provider, item_key, size, priority, now)
        logger.info(
            f"[Scheduler] Enqueue {provider}:{item_key}:{size or '*'} priority={priority} "
            f"created={created}"
        )
        return created

    def enqueue_eligible(self, now: datetime) -> int:
        """티어 분류기가 반환한 키를 잡으로 등록

        가장 최근 잡이 dead/skipped 인 identity는 다시 등록하지 않습니다.

        Returns:
            새로 생성된 잡 수
        """
        keys = self.classifier.eligible_keys(now)
        if not keys:
            return 0

        blocked = self.jobs.blocked_keys(
            job_dedupe_key(key.provider, key.item_key, key.size) for key in keys
        )
        created = 0
        for key in keys:
            if job_dedupe_key(key.provider, key.item_key, key.size) in blocked:
                continue
            if self.jobs.enqueue(
                key.provider,
                key.item_key,
                key.size,
                self.classifier.priority_for(key.tier),
                now,
            ):
                created += 1
        if created:
            logger.info(f"[Scheduler] Enqueued {created} eligible key(s) of {len(keys)}")
        return created

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(
        self,
        batch_size: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> RunSummary:
        """스케줄러 1회 실행

        Args:
            batch_size: 배치 크기 (기본값: scheduler_batch_size)
            dry_run: True면 잡 상태를 바꾸지 않고 선택 결과만 기록
            now: 기준 시각 (기본값: 현재 UTC)

        Returns:
            RunSummary

        Raises:
            SchedulerRunException: Job Store / Budget Ledger 장애
        """
        started = perf_counter()
        now = now or utcnow()
        batch_size = batch_size or self.config.scheduler_batch_size
        summary = RunSummary(run_id=str(uuid4()), started_at=now, dry_run=dry_run)
        logger.info(f"[Scheduler] Run {summary.run_id} started (batch={batch_size}, dry_run={dry_run})")

        try:
            self.runs.start(summary.run_id, now, dry_run)

            if not dry_run:
                cutoff = now - timedelta(seconds=self.config.scheduler_stale_running_timeout_s)
                summary.reclaimed = self.jobs.reclaim_stale(cutoff)
                summary.enqueued = self.enqueue_eligible(now)

            providers = [p for p in self.adapters if self.ledger.limit_for(p) > 0]
            remaining = self.ledger.remaining_by_provider(providers, now)
            batch = self.jobs.select_batch(batch_size, remaining, now)

            if dry_run:
                summary.selected = len(batch)
                return self._finish(summary, started)

            claimed = self._claim_and_reserve(batch, summary, now)
        except DatabaseException as e:
            raise self._abort(summary, started, e)

        outcomes = await self._dispatch_all(claimed, summary.run_id, now)

        storage_error: Optional[DatabaseException] = None
        for job, outcome in zip(claimed, outcomes):
            if isinstance(outcome, DispatchResult):
                summary.record(outcome)
            elif isinstance(outcome, DatabaseException):
                storage_error = storage_error or outcome
            else:
                # 잡은 running으로 남고 다음 sweep에서 회수됨
                logger.error(
                    f"[Scheduler] Unexpected dispatch error for job {job.id}: "
                    f"{type(outcome).__name__}: {outcome}"
                )
                summary.failed += 1

        if storage_error is not None:
            raise self._abort(summary, started, storage_error)

        self._record_provider_metrics(summary)
        try:
            return self._finish(summary, started)
        except DatabaseException as e:
            raise self._abort(summary, started, e)

    def _claim_and_reserve(self, batch: List[MarketJob], summary: RunSummary, now: datetime) -> List[ClaimedJob]:
        """순차 선점 + 예산 예약 (같은 예산 단위를 두 디스패처가 가져가지 않음)"""
        claimed: List[ClaimedJob] = []
        for row in batch:
            job = ClaimedJob.from_row(row)
            if not self.jobs.claim(job.id, summary.run_id, now):
                logger.debug(f"[Scheduler] Job {job.id} already claimed by another run")
                continue
            summary.selected += 1

            if not self.ledger.try_reserve(job.provider, now=now):
                self.jobs.release(job.id)
                summary.record(DispatchResult(
                    job_id=job.id,
                    provider=job.provider,
                    item_key=job.item_key,
                    size=job.size,
                    outcome=JobOutcome.DEFERRED,
                    error_message="budget denied",
                ))
                continue
            claimed.append(job)
        return claimed

    async def _dispatch_all(self, jobs: List[ClaimedJob], run_id: str, now: datetime) -> list:
        """제한된 동시성으로 디스패치, 모든 결과를 수집 (all-settled)"""
        if not jobs:
            return []
        semaphore = asyncio.Semaphore(self.config.scheduler_concurrency)

        async def _guarded(job: ClaimedJob):
            async with semaphore:
                return await self.dispatch(job, run_id, now)

        return await asyncio.gather(*(_guarded(job) for job in jobs), return_exceptions=True)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, job: ClaimedJob, run_id: str, now: Optional[datetime] = None) -> DispatchResult:
        """running 잡 1건 실행 및 결과 기록

        프로바이더/정규화 오류는 잡 상태로 기록하고 DispatchResult로 반환합니다.
        저장소 오류(DatabaseException)만 호출자에게 전파됩니다.
        """
        now = now or utcnow()
        started = perf_counter()
        adapter = self.adapters.get(job.provider)

        try:
            if adapter is None:
                raise TransientError(f"no adapter registered for {job.provider}", provider=job.provider)
            payload = await asyncio.wait_for(
                adapter.fetch(job.item_key, job.size),
                timeout=self.config.scheduler_fetch_timeout_s,
            )
            snapshot = self.normalizer.normalize(
                job.provider, payload, sku=job.item_key, size=job.size or None
            )
        except asyncio.TimeoutError:
            error: Exception = TransientError("fetch timed out", provider=job.provider)
            return self._record_failure(job, error, now, started)
        except DatabaseException:
            raise
        except Exception as e:
            return self._record_failure(job, e, now, started)

        self.prices.upsert_latest(snapshot)
        self.prices.append_history(snapshot)
        self.jobs.mark_succeeded(job.id, now)
        self.tracked.mark_synced(job.provider, job.item_key, job.size, now)
        self._invalidate_cache(snapshot)

        elapsed_ms = (perf_counter() - started) * 1000
        logger.info(
            f"[Scheduler] Job {job.id} {job.provider}:{job.item_key}:{job.size or '*'} synced "
            f"({snapshot.item_key} {snapshot.currency}, {elapsed_ms:.0f}ms)"
        )
        return DispatchResult(
            job_id=job.id,
            provider=job.provider,
            item_key=job.item_key,
            size=job.size,
            outcome=JobOutcome.SUCCEEDED,
            snapshot_key=snapshot.item_key,
            elapsed_ms=elapsed_ms,
        )

    def _record_failure(self, job: ClaimedJob, error: Exception, now: datetime, started: float) -> DispatchResult:
        """오류 분류에 따른 잡 상태 전이"""
        outcome = self.strategy.classify(error, job.retry_count)
        message = sanitize_for_log(f"{type(error).__name__}: {error}", max_length=500)
        label = f"{job.provider}:{job.item_key}:{job.size or '*'}"

        fingerprint = self.strategy.fingerprint_of(error)
        if fingerprint is not None:
            logger.warning(f"[Normalizer] Job {job.id} {label} rejected payload fingerprint={fingerprint}: {error}")

        if outcome == JobOutcome.DEFERRED:
            self.jobs.mark_deferred(job.id, message, self.strategy.deferred_until(now), now)
            self.ledger.exhaust(job.provider, now)
            logger.warning(f"[Scheduler] Job {job.id} {label} rate limited; deferred to next window")
        elif outcome == JobOutcome.DEAD:
            self.jobs.mark_failed(job.id, message, now)
            if self.strategy.is_alertable(error):
                self.alerts.critical("auth_failure", f"{job.provider} credentials rejected", job_id=job.id)
        elif outcome == JobOutcome.SKIPPED:
            self.jobs.mark_skipped(job.id, message, now)
            self.tracked.mark_synced(job.provider, job.item_key, job.size, now)
            logger.info(f"[Scheduler] Job {job.id} {label} not found upstream; skipped")
        elif outcome == JobOutcome.RETRY:
            retry_count = job.retry_count + 1
            not_before = self.strategy.next_attempt_at(retry_count, now)
            self.jobs.mark_retry(job.id, message, not_before, now)
            logger.warning(
                f"[Scheduler] Job {job.id} {label} failed ({message}); "
                f"retry {retry_count}/{self.strategy.max_retries} after {not_before.isoformat()}"
            )
        else:
            self.jobs.mark_failed(job.id, message, now)
            logger.error(f"[Scheduler] Job {job.id} {label} failed permanently: {message}")

        return DispatchResult(
            job_id=job.id,
            provider=job.provider,
            item_key=job.item_key,
            size=job.size,
            outcome=outcome,
            error_message=message,
            elapsed_ms=(perf_counter() - started) * 1000,
        )

    def _invalidate_cache(self, snapshot) -> None:
        if self.cache is None or not snapshot.sku or not snapshot.size:
            return
        try:
            self.cache.invalidate(snapshot.sku, snapshot.size, snapshot.currency)
        except CacheException as e:
            self.alerts.error("cache_invalidate", str(e), sku=snapshot.sku, size=snapshot.size)

    # ------------------------------------------------------------------
    # run record
    # ------------------------------------------------------------------

    def _record_provider_metrics(self, summary: RunSummary) -> None:
        try:
            self.runs.record_provider_metrics(summary.run_id, summary.provider_stats())
        except DatabaseException as e:
            self.alerts.error("provider_metrics", str(e), run_id=summary.run_id)

    def _finish(self, summary: RunSummary, started: float) -> RunSummary:
        summary.completed_at = utcnow()
        summary.elapsed_ms = (perf_counter() - started) * 1000
        self.runs.finish(summary)
        logger.info(
            f"[Scheduler] Run {summary.run_id} completed: selected={summary.selected} "
            f"succeeded={summary.succeeded} failed={summary.failed} deferred={summary.deferred} "
            f"skipped={summary.skipped} ({summary.duration_ms}ms)"
        )
        return summary

    def _abort(self, summary: RunSummary, started: float, error: DatabaseException) -> SchedulerRunException:
        summary.completed_at = utcnow()
        summary.elapsed_ms = (perf_counter() - started) * 1000
        logger.error(f"[Scheduler] Run {summary.run_id} aborted: {error}")
        try:
            self.runs.finish(summary, status="failed", error_message=str(error))
        except DatabaseException as e:
            self.alerts.error("run_record", str(e), run_id=summary.run_id)
        return SchedulerRunException(summary.run_id, str(error))
