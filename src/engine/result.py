"""Dispatch Result - 잡 디스패치/스케줄러 실행 결과 포맷"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.engine.strategy import JobOutcome


@dataclass
class DispatchResult:
    """단일 잡 디스패치 결과

    Attributes:
        job_id: 잡 ID
        provider: 프로바이더
        item_key: 프로바이더 상품 키
        size: 사이즈
        outcome: 디스패치 결과
        snapshot_key: 저장된 스냅샷 item_key (성공 시)
        error_message: 오류 메시지
        elapsed_ms: 소요 시간 (밀리초)
    """

    job_id: int
    provider: str
    item_key: str
    size: str
    outcome: JobOutcome
    snapshot_key: Optional[str] = None
    error_message: Optional[str] = None
    elapsed_ms: Optional[float] = None

    @property
    def is_success(self) -> bool:
        return self.outcome in (JobOutcome.SUCCEEDED, JobOutcome.SKIPPED)

    @property
    def is_error(self) -> bool:
        return self.outcome in (JobOutcome.RETRY, JobOutcome.FAILED, JobOutcome.DEAD)


@dataclass
class ProviderBatchStats:
    """프로바이더별 배치 통계"""

    batch_size: int = 0
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0


@dataclass
class RunSummary:
    """스케줄러 실행 요약

    /scheduler/run 응답 {synced, errors, totalVariants, durationMs} 의 원천입니다.
    """

    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    dry_run: bool = False
    elapsed_ms: float = 0.0
    reclaimed: int = 0
    enqueued: int = 0
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: int = 0
    results: list[DispatchResult] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return self.succeeded

    @property
    def errors(self) -> int:
        return self.failed

    @property
    def total_variants(self) -> int:
        return self.selected

    @property
    def duration_ms(self) -> int:
        return int(self.elapsed_ms)

    def record(self, result: DispatchResult) -> None:
        """디스패치 결과 집계"""
        self.results.append(result)
        if result.outcome == JobOutcome.SUCCEEDED:
            self.succeeded += 1
        elif result.outcome == JobOutcome.SKIPPED:
            self.skipped += 1
        elif result.outcome == JobOutcome.DEFERRED:
            self.deferred += 1
        else:
            self.failed += 1

    def provider_stats(self) -> dict[str, ProviderBatchStats]:
        """프로바이더별 집계 (run metric 기록용)"""
        stats: dict[str, ProviderBatchStats] = {}
        for result in self.results:
            entry = stats.setdefault(result.provider, ProviderBatchStats())
            entry.batch_size += 1
            if result.is_success:
                entry.succeeded += 1
            elif result.outcome == JobOutcome.DEFERRED:
                entry.deferred += 1
            else:
                entry.failed += 1
        return stats
