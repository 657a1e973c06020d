"""스케줄러 실행 기록 리포지토리"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import MarketJobRun, MarketProviderMetric

if TYPE_CHECKING:
    from src.engine.result import ProviderBatchStats, RunSummary


class RunRepository:
    """실행 기록 데이터 액세스 레이어"""

    def __init__(self, db: Session):
        self.db = db

    def start(self, run_id: str, started_at: datetime, dry_run: bool = False) -> MarketJobRun:
        """실행 기록 생성 (status=running)"""
        try:
            run = MarketJobRun(
                run_id=run_id,
                status="running",
                dry_run=dry_run,
                started_at=started_at,
            )
            self.db.add(run)
            self.db.commit()
            self.db.refresh(run)
            return run
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create run record {run_id}: {e}")
            raise DatabaseException(f"Failed to create run record: {e}")

    def finish(
        self,
        summary: "RunSummary",
        status: str = "completed",
        error_message: Optional[str] = None,
    ) -> None:
        """실행 기록 마감"""
        try:
            (
                self.db.query(MarketJobRun)
                .filter(MarketJobRun.run_id == summary.run_id)
                .update(
                    {
                        MarketJobRun.status: status,
                        MarketJobRun.completed_at: summary.completed_at,
                        MarketJobRun.jobs_selected: summary.selected,
                        MarketJobRun.jobs_succeeded: summary.succeeded,
                        MarketJobRun.jobs_failed: summary.failed,
                        MarketJobRun.jobs_deferred: summary.deferred,
                        MarketJobRun.jobs_skipped: summary.skipped,
                        MarketJobRun.jobs_reclaimed: summary.reclaimed,
                        MarketJobRun.total_variants: summary.total_variants,
                        MarketJobRun.error_message: error_message,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to finish run record {summary.run_id}: {e}")
            raise DatabaseException(f"Failed to finish run record: {e}")

    def record_provider_metrics(self, run_id: str, stats: dict[str, "ProviderBatchStats"]) -> None:
        """프로바이더별 배치 지표 저장"""
        try:
            for provider, entry in stats.items():
                self.db.add(MarketProviderMetric(
                    provider=provider,
                    run_id=run_id,
                    batch_size=entry.batch_size,
                    succeeded=entry.succeeded,
                    failed=entry.failed,
                    deferred=entry.deferred,
                ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"Failed to record provider metrics: {e}")

    def get_by_run_id(self, run_id: str) -> Optional[MarketJobRun]:
        return self.db.query(MarketJobRun).filter(MarketJobRun.run_id == run_id).first()

    def get_recent(self, limit: int = 20) -> List[MarketJobRun]:
        """최근 실행 기록"""
        return self.db.query(MarketJobRun).order_by(
            desc(MarketJobRun.started_at), desc(MarketJobRun.id)
        ).limit(limit).all()

    def get_provider_metrics(self, run_id: str) -> List[MarketProviderMetric]:
        return (
            self.db.query(MarketProviderMetric)
            .filter(MarketProviderMetric.run_id == run_id)
            .order_by(MarketProviderMetric.provider)
            .all()
        )
