"""Budget Ledger - 프로바이더별 시간당 호출 예산 관리

예산 구조:
- 키: (provider, hour_window) - 정시 버킷
- rate_limit: 해당 시간의 호출 한도 (설정값)
- used: 단조 증가 카운터, 디스패치 시점에만 검사
- 시간이 넘어가면 새 윈도우 행을 사용하므로 별도 리셋 없음 (이월/차용 없음)
"""

from datetime import datetime
from typing import Iterable, Optional

from src.core.logging import logger
from src.repositories.impl.budget_repository import BudgetRepository
from src.utils.clock import hour_window

from .providers import provider_key


class BudgetLedger:
    """호출 예산 관리자

    Usage:
        ledger = BudgetLedger(BudgetRepository(db), {"stockx": 100})

        if ledger.try_reserve("stockx"):
            # 디스패치
            pass
        else:
            # 다음 윈도우까지 pending 유지
            pass
    """

    def __init__(self, repository: BudgetRepository, rate_limits: dict[str, int]):
        self.repository = repository
        self.rate_limits = {provider_key(provider): limit for provider, limit in rate_limits.items()}

    def limit_for(self, provider: str) -> int:
        """프로바이더 시간당 한도 (미설정 프로바이더는 0)"""
        return self.rate_limits.get(provider_key(provider), 0)

    def try_reserve(self, provider: str, n: int = 1, now: Optional[datetime] = None) -> bool:
        """현재 윈도우 예산 n개 예약

        Args:
            provider: 프로바이더
            n: 예약할 호출 수
            now: 기준 시각

        Returns:
            bool: 승인 여부

        Raises:
            ValueError: n이 1 미만인 경우
            DatabaseException: 저장소 장애
        """
        if n < 1:
            raise ValueError("n must be >= 1")
        provider = provider_key(provider)
        limit = self.limit_for(provider)
        if limit <= 0:
            logger.warning(f"[Budget] No rate limit configured for {provider}; denying")
            return False

        window = hour_window(now)
        granted = self.repository.try_reserve(provider, window, limit, n)
        if not granted:
            logger.info(f"[Budget] {provider} budget exhausted for window {window.isoformat()}")
        return granted

    def remaining(self, provider: str, now: Optional[datetime] = None) -> int:
        """현재 윈도우 남은 호출 수"""
        provider = provider_key(provider)
        limit = self.limit_for(provider)
        if limit <= 0:
            return 0
        row = self.repository.get(provider, hour_window(now))
        if row is None:
            return limit
        return max(0, row.rate_limit - row.used)

    def remaining_by_provider(
        self,
        providers: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, int]:
        """프로바이더별 남은 호출 수 (기본: 한도가 설정된 전체 프로바이더)"""
        targets = list(providers) if providers is not None else list(self.rate_limits)
        return {provider: self.remaining(provider, now) for provider in targets}

    def exhaust(self, provider: str, now: Optional[datetime] = None) -> None:
        """현재 윈도우 예산 소진 처리 (업스트림이 429를 반환한 경우)"""
        provider = provider_key(provider)
        limit = self.limit_for(provider)
        if limit <= 0:
            return
        self.repository.exhaust(provider, hour_window(now), limit)
        logger.warning(f"[Budget] {provider} marked exhausted until next window")

    def get_report(self, now: Optional[datetime] = None) -> dict:
        """예산 사용 리포트

        Returns:
            dict: 프로바이더별 {limit, remaining}
        """
        return {
            provider: {"limit": limit, "remaining": self.remaining(provider, now)}
            for provider, limit in self.rate_limits.items()
        }
