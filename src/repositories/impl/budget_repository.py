"""예산 리포지토리 - (provider, hour_window) 호출 카운터"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.database import dialect_insert
from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import MarketBudget


class BudgetRepository:
    """예산 데이터 액세스 레이어

    윈도우 행은 첫 사용 시 생성되며, 시간이 바뀌면 새 윈도우 키로 자연스럽게 리셋됩니다.
    """

    def __init__(self, db: Session):
        self.db = db

    def _ensure_window(self, provider: str, window: datetime, rate_limit: int) -> None:
        stmt = (
            dialect_insert(self.db, MarketBudget)
            .values(provider=provider, hour_window=window, rate_limit=rate_limit, used=0)
            .on_conflict_do_nothing(index_elements=["provider", "hour_window"])
        )
        self.db.execute(stmt)

    def try_reserve(self, provider: str, window: datetime, rate_limit: int, n: int = 1) -> bool:
        """used + n <= rate_limit 이면 원자적으로 증가

        Returns:
            승인 여부
        """
        try:
            self._ensure_window(provider, window, rate_limit)
            granted = (
                self.db.query(MarketBudget)
                .filter(MarketBudget.provider == provider)
                .filter(MarketBudget.hour_window == window)
                .filter(MarketBudget.used + n <= MarketBudget.rate_limit)
                .update({MarketBudget.used: MarketBudget.used + n}, synchronize_session=False)
            )
            self.db.commit()
            return granted == 1
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to reserve budget for {provider}: {e}")
            raise DatabaseException(f"Failed to reserve budget: {e}")

    def exhaust(self, provider: str, window: datetime, rate_limit: int) -> None:
        """윈도우 예산을 모두 사용한 것으로 표시 (업스트림 429 수신 시)"""
        try:
            self._ensure_window(provider, window, rate_limit)
            (
                self.db.query(MarketBudget)
                .filter(MarketBudget.provider == provider)
                .filter(MarketBudget.hour_window == window)
                .filter(MarketBudget.used < MarketBudget.rate_limit)
                .update({MarketBudget.used: MarketBudget.rate_limit}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to exhaust budget for {provider}: {e}")
            raise DatabaseException(f"Failed to exhaust budget: {e}")

    def get(self, provider: str, window: datetime) -> Optional[MarketBudget]:
        """윈도우 예산 행 조회 (없으면 None)"""
        try:
            return (
                self.db.query(MarketBudget)
                .filter(MarketBudget.provider == provider)
                .filter(MarketBudget.hour_window == window)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to read budget for {provider}: {e}")
            raise DatabaseException(f"Failed to read budget: {e}")
