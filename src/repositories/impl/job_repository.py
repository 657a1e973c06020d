"""마켓 잡 리포지토리 - 잡 큐 상태 전이

모든 상태 전이는 `UPDATE ... WHERE status = <기대 상태>` 단일 문장으로 처리합니다
(read-then-write 없음). 영향받은 행 수로 성공 여부를 판단합니다.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import ACTIVE_JOB_STATUSES, JobStatus, MarketJob, canonical_provider, job_dedupe_key
from src.utils.clock import utcnow


class JobRepository:
    """잡 큐 데이터 액세스 레이어"""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        provider: str,
        item_key: str,
        size: str = "",
        priority: int = 100,
        now: Optional[datetime] = None,
    ) -> bool:
        """pending 잡 생성 (활성 잡이 있으면 no-op)

        Returns:
            새 잡 생성 여부
        """
        provider = canonical_provider(provider)
        dedupe_key = job_dedupe_key(provider, item_key, size)
        now = now or utcnow()
        try:
            active = (
                self.db.query(MarketJob.id)
                .filter(MarketJob.dedupe_key == dedupe_key)
                .filter(MarketJob.status.in_(ACTIVE_JOB_STATUSES))
                .first()
            )
            if active:
                return False

            self.db.add(MarketJob(
                provider=provider,
                item_key=item_key,
                size=size,
                dedupe_key=dedupe_key,
                priority=priority,
                status=JobStatus.PENDING.value,
                retry_count=0,
                created_at=now,
                updated_at=now,
            ))
            self.db.commit()
            return True
        except IntegrityError:
            # 동시 enqueue: partial unique index가 중복을 거부
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to enqueue job {dedupe_key}: {e}")
            raise DatabaseException(f"Failed to enqueue job: {e}")

    def get_by_id(self, job_id: int) -> Optional[MarketJob]:
        """ID로 잡 조회"""
        return self.db.query(MarketJob).filter(MarketJob.id == job_id).first()

    def find_by_identity(self, provider: str, item_key: str, size: str = "") -> List[MarketJob]:
        """identity의 전체 잡 이력 (최신순)"""
        return (
            self.db.query(MarketJob)
            .filter(MarketJob.dedupe_key == job_dedupe_key(provider, item_key, size))
            .order_by(MarketJob.id.desc())
            .all()
        )

    def select_batch(
        self,
        max_size: int,
        remaining_by_provider: dict[str, int],
        now: Optional[datetime] = None,
    ) -> List[MarketJob]:
        """디스패치 후보 선택

        pending 이면서 백오프가 끝난 잡을 priority 내림차순, created_at 오름차순으로
        선택합니다. 프로바이더별로 남은 예산만큼만 포함합니다.

        Args:
            max_size: 최대 배치 크기
            remaining_by_provider: 프로바이더별 남은 호출 수
            now: 기준 시각

        Returns:
            선택된 잡 목록 (상태는 변경하지 않음)
        """
        if max_size <= 0:
            return []
        now = now or utcnow()
        try:
            candidates: List[MarketJob] = []
            for provider, remaining in remaining_by_provider.items():
                if remaining <= 0:
                    continue
                candidates.extend(
                    self._ready_query(now)
                    .filter(MarketJob.provider == canonical_provider(provider))
                    .limit(min(remaining, max_size))
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to select job batch: {e}")
            raise DatabaseException(f"Failed to select job batch: {e}")

        candidates.sort(key=lambda job: (-job.priority, job.created_at, job.id))
        return candidates[:max_size]

    def _ready_query(self, now: datetime):
        return (
            self.db.query(MarketJob)
            .filter(MarketJob.status == JobStatus.PENDING.value)
            .filter((MarketJob.not_before.is_(None)) | (MarketJob.not_before <= now))
            .order_by(MarketJob.priority.desc(), MarketJob.created_at.asc(), MarketJob.id.asc())
        )

    def claim(self, job_id: int, run_id: str, now: Optional[datetime] = None) -> bool:
        """pending → running (유일한 상호배제 지점)

        Returns:
            선점 성공 여부. 다른 실행이 먼저 가져갔으면 False.
        """
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.PENDING,
            {
                MarketJob.status: JobStatus.RUNNING.value,
                MarketJob.started_at: now,
                MarketJob.last_run_id: run_id,
                MarketJob.updated_at: now,
            },
        )

    def release(self, job_id: int) -> bool:
        """running → pending (예산 거부 등으로 디스패치하지 못한 잡)"""
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.PENDING.value,
                MarketJob.started_at: None,
                MarketJob.updated_at: utcnow(),
            },
        )

    def mark_succeeded(self, job_id: int, now: Optional[datetime] = None) -> bool:
        """running → succeeded"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.SUCCEEDED.value,
                MarketJob.error_message: None,
                MarketJob.completed_at: now,
                MarketJob.updated_at: now,
            },
        )

    def mark_skipped(self, job_id: int, message: str, now: Optional[datetime] = None) -> bool:
        """running → skipped (NotFound)"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.SKIPPED.value,
                MarketJob.error_message: message,
                MarketJob.completed_at: now,
                MarketJob.updated_at: now,
            },
        )

    def mark_failed(self, job_id: int, message: str, now: Optional[datetime] = None) -> bool:
        """running → failed (terminal, 재시도 횟수는 유지)"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.FAILED.value,
                MarketJob.error_message: message,
                MarketJob.completed_at: now,
                MarketJob.updated_at: now,
            },
        )

    def mark_retry(
        self,
        job_id: int,
        message: str,
        not_before: datetime,
        now: Optional[datetime] = None,
    ) -> bool:
        """running → pending, retry_count + 1, 백오프 시각 설정"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.PENDING.value,
                MarketJob.retry_count: MarketJob.retry_count + 1,
                MarketJob.error_message: message,
                MarketJob.not_before: not_before,
                MarketJob.started_at: None,
                MarketJob.updated_at: now,
            },
        )

    def mark_deferred(
        self,
        job_id: int,
        message: str,
        not_before: datetime,
        now: Optional[datetime] = None,
    ) -> bool:
        """running → pending, retry_count 유지 (RateLimited)"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                MarketJob.status: JobStatus.PENDING.value,
                MarketJob.error_message: message,
                MarketJob.not_before: not_before,
                MarketJob.started_at: None,
                MarketJob.updated_at: now,
            },
        )

    def _transition(self, job_id: int, expected: JobStatus, values: dict) -> bool:
        try:
            updated = (
                self.db.query(MarketJob)
                .filter(MarketJob.id == job_id)
                .filter(MarketJob.status == expected.value)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update job {job_id}: {e}")
            raise DatabaseException(f"Failed to update job {job_id}: {e}")

    def reclaim_stale(self, cutoff: datetime) -> int:
        """cutoff 이전에 시작된 running 잡을 pending으로 회수 (크래시 복구)

        Returns:
            회수한 잡 수
        """
        try:
            reclaimed = (
                self.db.query(MarketJob)
                .filter(MarketJob.status == JobStatus.RUNNING.value)
                .filter(MarketJob.started_at < cutoff)
                .update(
                    {
                        MarketJob.status: JobStatus.PENDING.value,
                        MarketJob.started_at: None,
                        MarketJob.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
            if reclaimed:
                logger.warning(f"[Scheduler] Reclaimed {reclaimed} stale running job(s)")
            return reclaimed
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to reclaim stale jobs: {e}")
            raise DatabaseException(f"Failed to reclaim stale jobs: {e}")

    def reset_failed(self) -> int:
        """terminal failed 잡을 pending으로 되돌림 (retry_count=0)

        identity당 가장 최근 failed 잡 하나만 되돌리며, 이미 활성 잡이 있는
        identity는 건너뜁니다.

        Returns:
            되돌린 잡 수
        """
        try:
            active_keys = {
                key for (key,) in self.db.query(MarketJob.dedupe_key)
                .filter(MarketJob.status.in_(ACTIVE_JOB_STATUSES))
                .all()
            }
            failed = (
                self.db.query(MarketJob.id, MarketJob.dedupe_key)
                .filter(MarketJob.status == JobStatus.FAILED.value)
                .order_by(MarketJob.id.desc())
                .all()
            )
            job_ids: List[int] = []
            for job_id, dedupe_key in failed:
                if dedupe_key in active_keys:
                    continue
                active_keys.add(dedupe_key)
                job_ids.append(job_id)

            if not job_ids:
                return 0

            reset = (
                self.db.query(MarketJob)
                .filter(MarketJob.id.in_(job_ids))
                .filter(MarketJob.status == JobStatus.FAILED.value)
                .update(
                    {
                        MarketJob.status: JobStatus.PENDING.value,
                        MarketJob.retry_count: 0,
                        MarketJob.error_message: None,
                        MarketJob.not_before: None,
                        MarketJob.started_at: None,
                        MarketJob.completed_at: None,
                        MarketJob.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
            logger.info(f"[Scheduler] Reset {reset} failed job(s) to pending")
            return reset
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to reset failed jobs: {e}")
            raise DatabaseException(f"Failed to reset failed jobs: {e}")

    def blocked_keys(self, dedupe_keys: Iterable[str]) -> set[str]:
        """자동 재등록 대상에서 제외할 identity

        가장 최근 잡이 failed(dead) 또는 skipped(NotFound)인 identity입니다.
        운영자 리셋이나 수동 enqueue 전까지 티어 분류기가 다시 등록하지 않습니다.
        """
        keys = list(dedupe_keys)
        if not keys:
            return set()
        latest = (
            self.db.query(func.max(MarketJob.id).label("id"))
            .filter(MarketJob.dedupe_key.in_(keys))
            .group_by(MarketJob.dedupe_key)
            .subquery()
        )
        rows = (
            self.db.query(MarketJob.dedupe_key)
            .join(latest, MarketJob.id == latest.c.id)
            .filter(MarketJob.status.in_((JobStatus.FAILED.value, JobStatus.SKIPPED.value)))
            .all()
        )
        return {key for (key,) in rows}

    def count_by_status(self) -> dict[str, int]:
        """상태별 잡 수"""
        rows = (
            self.db.query(MarketJob.status, func.count(MarketJob.id))
            .group_by(MarketJob.status)
            .all()
        )
        return {status: int(count) for status, count in rows}
