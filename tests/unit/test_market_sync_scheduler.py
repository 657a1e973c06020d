"""MarketSyncScheduler 유닛 테스트"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.exceptions import SchedulerRunException
from src.engine.result import RunSummary
from src.scheduler.market_sync import MarketSyncScheduler


class TestRunMarketSync:
    @pytest.mark.asyncio
    async def test_success(self, now):
        summary = RunSummary(run_id="run-1", started_at=now, succeeded=3, failed=1)
        with patch("src.scheduler.market_sync.SessionLocal") as mock_session, \
             patch("src.scheduler.market_sync.SyncOrchestrator") as mock_orchestrator:
            mock_orchestrator.return_value.run = AsyncMock(return_value=summary)

            result = await MarketSyncScheduler.run_market_sync(adapters={})

        assert result == {"status": "success", "run_id": "run-1", "synced": 3, "errors": 1}
        mock_session.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_aborted_run(self):
        with patch("src.scheduler.market_sync.SessionLocal") as mock_session, \
             patch("src.scheduler.market_sync.SyncOrchestrator") as mock_orchestrator:
            mock_orchestrator.return_value.run = AsyncMock(
                side_effect=SchedulerRunException("run-2", "database unavailable")
            )

            result = await MarketSyncScheduler.run_market_sync(adapters={})

        assert result["status"] == "error"
        assert "run-2" in result["error"]
        mock_session.return_value.close.assert_called_once()


class TestScheduleWithApscheduler:
    def test_interval_job(self):
        scheduler = MarketSyncScheduler.schedule_with_apscheduler(
            adapters={}, cache_service=None, alerts=MagicMock(), interval_minutes=10
        )

        job = scheduler.get_job("market_sync")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.kwargs["adapters"] == {}
