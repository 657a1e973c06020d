"""Retry Strategy - 오류 유형별 잡 처리 결정

Determines the next job state and backoff delay based on error types.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from src.engine.exceptions import (
    AuthFailureError,
    NormalizationError,
    NotFoundError,
    RateLimitedError,
)
from src.utils.clock import next_hour_window


class JobOutcome(str, Enum):
    """디스패치 결과

    잡 완료 핸들러가 상태 전이를 결정할 때 사용합니다.
    """

    SUCCEEDED = "succeeded"
    RETRY = "retry"  # pending 복귀 + 백오프
    FAILED = "failed"  # 최대 재시도 초과 (terminal)
    DEAD = "dead"  # 인증 실패: 즉시 terminal + 알림
    SKIPPED = "skipped"  # NotFound: 영구 스킵
    DEFERRED = "deferred"  # RateLimited: 다음 윈도우로 연기, 실패 아님


class RetryStrategy:
    """재시도 전략

    Usage:
        strategy = RetryStrategy(max_retries=3)

        try:
            payload = await adapter.fetch(job.item_key, job.size)
        except Exception as e:
            outcome = strategy.classify(e, job.retry_count)
            if outcome == JobOutcome.RETRY:
                not_before = strategy.next_attempt_at(job.retry_count + 1, now)
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_base_minutes: float = 1.0,
        backoff_factor: float = 4.0,
    ):
        self.max_retries = max_retries
        self.backoff_base_minutes = backoff_base_minutes
        self.backoff_factor = backoff_factor

    def classify(self, error: Exception, retry_count: int) -> JobOutcome:
        """오류 → 잡 결과

        - RateLimitedError: DEFERRED (retry_count 증가 없음)
        - AuthFailureError: DEAD
        - NotFoundError: SKIPPED
        - 그 외 (TransientError, NormalizationError, 예상 못한 예외):
          retry_count < max_retries 이면 RETRY, 아니면 FAILED

        Args:
            error: 발생한 예외
            retry_count: 현재까지의 재시도 횟수

        Returns:
            JobOutcome
        """
        if isinstance(error, RateLimitedError):
            return JobOutcome.DEFERRED
        if isinstance(error, AuthFailureError):
            return JobOutcome.DEAD
        if isinstance(error, NotFoundError):
            return JobOutcome.SKIPPED
        if retry_count < self.max_retries:
            return JobOutcome.RETRY
        return JobOutcome.FAILED

    def backoff_delay(self, retry_count: int) -> timedelta:
        """지수 백오프: base * factor^(retry_count-1) 분

        retry_count=1 → 1분, 2 → 4분, 3 → 16분 (기본값 기준)
        """
        exponent = max(0, retry_count - 1)
        minutes = self.backoff_base_minutes * (self.backoff_factor ** exponent)
        return timedelta(minutes=minutes)

    def next_attempt_at(self, retry_count: int, now: datetime) -> datetime:
        """재시도 가능 시각"""
        return now + self.backoff_delay(retry_count)

    @staticmethod
    def deferred_until(now: datetime) -> datetime:
        """호출 한도 초과 시 다음 시간 윈도우 시작 시각"""
        return next_hour_window(now)

    @staticmethod
    def is_alertable(error: Exception) -> bool:
        """운영자 알림 대상 여부 (자격 증명 문제)"""
        return isinstance(error, AuthFailureError)

    @staticmethod
    def fingerprint_of(error: Exception) -> Optional[str]:
        """정규화 오류의 페이로드 지문"""
        if isinstance(error, NormalizationError):
            return error.fingerprint
        return None
