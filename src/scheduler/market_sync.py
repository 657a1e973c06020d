"""주기적 마켓 데이터 동기화 스케줄러 (프로세스 내 실행)

기본 진입점은 외부 cron이 호출하는 POST /scheduler/run 이며,
scheduler_enabled=True 일 때만 앱 프로세스에서 직접 실행합니다.
"""

from typing import Any, Optional

from src.core.config import settings
from src.core.database import SessionLocal
from src.core.exceptions import SchedulerRunException
from src.core.logging import logger
from src.engine.orchestrator import SyncOrchestrator
from src.services.impl.alert_channel import AlertChannel


class MarketSyncScheduler:
    """마켓 동기화 스케줄러"""

    @staticmethod
    async def run_market_sync(
        adapters: Any,
        cache_service=None,
        alerts: Optional[AlertChannel] = None,
    ) -> dict:
        """동기화 1회 실행"""
        db = SessionLocal()
        try:
            orchestrator = SyncOrchestrator(db, adapters=adapters, cache_service=cache_service, alerts=alerts)
            summary = await orchestrator.run()
            return {
                "status": "success",
                "run_id": summary.run_id,
                "synced": summary.synced,
                "errors": summary.errors,
            }
        except SchedulerRunException as e:
            logger.error(f"[Scheduler] Periodic market sync aborted: {e}")
            return {
                "status": "error",
                "error": str(e),
            }
        finally:
            db.close()

    @staticmethod
    def schedule_with_apscheduler(
        adapters: Any,
        cache_service=None,
        alerts: Optional[AlertChannel] = None,
        interval_minutes: Optional[int] = None,
    ):
        """APScheduler를 사용한 스케줄링 설정"""
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        interval_minutes = interval_minutes or settings.scheduler_interval_minutes
        scheduler = AsyncIOScheduler(timezone="UTC")

        # 이전 실행이 끝나지 않았으면 겹쳐 실행하지 않음
        scheduler.add_job(
            MarketSyncScheduler.run_market_sync,
            trigger=IntervalTrigger(minutes=interval_minutes),
            kwargs={"adapters": adapters, "cache_service": cache_service, "alerts": alerts},
            id="market_sync",
            name="Market Data Sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        logger.info(f"[Scheduler] Market sync job scheduled every {interval_minutes} minute(s)")
        return scheduler
