"""SyncOrchestrator 테스트 (SQLite + Fake 어댑터)"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeAdapter, alias_variant, stockx_variants
from src.core.exceptions import CacheConnectionException, DatabaseException, SchedulerRunException
from src.engine.exceptions import AuthFailureError, NotFoundError, RateLimitedError, TransientError
from src.engine.orchestrator import SyncOrchestrator
from src.repositories.impl.budget_repository import BudgetRepository
from src.repositories.impl.run_repository import RunRepository
from src.repositories.impl.tracked_product_repository import TrackedProductRepository
from src.repositories.models import JobStatus, MarketLatestPrice, MarketPriceHistory
from src.services.impl.alert_channel import AlertChannel
from src.utils.clock import hour_window

SKU = "DD1391-100"


def _orchestrator(db, test_settings, adapters: dict, **kwargs) -> SyncOrchestrator:
    return SyncOrchestrator(db, adapters=adapters, config=test_settings, **kwargs)


def _job(orchestrator: SyncOrchestrator, provider="stockx", item_key=SKU, size="10"):
    return orchestrator.jobs.find_by_identity(provider, item_key, size)[0]


class TestEndToEndScenario:
    """enqueue → run → snapshot + history"""

    @pytest.mark.asyncio
    async def test_dedup_enqueue_and_successful_sync(self, db, test_settings, now):
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})

        assert orchestrator.enqueue("stockx", SKU, "10", priority=5, now=now) is True
        assert orchestrator.enqueue("stockx", SKU, "10", priority=5, now=now) is False
        assert len(orchestrator.jobs.find_by_identity("stockx", SKU, "10")) == 1

        summary = await orchestrator.run(now=now)

        assert summary.synced == 1
        assert summary.errors == 0
        assert summary.total_variants == 1
        assert adapter.calls == [(SKU, "10")]
        assert _job(orchestrator).status == JobStatus.SUCCEEDED.value

        latest = orchestrator.prices.get_latest("stockx:var-10", "USD")
        assert latest.lowest_ask == Decimal("145.00")
        assert latest.highest_bid == Decimal("130.00")
        assert latest.sku == SKU
        assert db.query(MarketPriceHistory).count() == 1

        # 같은 업스트림 데이터로 재동기화해도 이력은 1건
        assert orchestrator.enqueue("stockx", SKU, "10", now=now) is True
        second = await orchestrator.run(now=now + timedelta(minutes=1))

        assert second.synced == 1
        assert db.query(MarketPriceHistory).count() == 1
        assert db.query(MarketLatestPrice).count() == 1

    @pytest.mark.asyncio
    async def test_multi_provider_snapshots(self, db, test_settings, now):
        adapters = {
            "stockx": FakeAdapter(default=stockx_variants()),
            "alias": FakeAdapter(default=lambda item_key, size: alias_variant(size=size)),
        }
        orchestrator = _orchestrator(db, test_settings, adapters)
        orchestrator.enqueue("stockx", SKU, "10", now=now)
        orchestrator.enqueue("alias", "air-force-1-low-white-dd1391-100", "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.synced == 2
        rows = orchestrator.prices.get_latest_for_item(SKU, "10", "USD")
        assert {row.provider for row in rows} == {"stockx", "alias"}
        alias_row = next(row for row in rows if row.provider == "alias")
        assert alias_row.lowest_ask == Decimal("142.00")


class TestErrorTaxonomy:
    """오류 유형별 잡 상태 전이"""

    @pytest.mark.asyncio
    async def test_transient_error_retries_with_backoff(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=TransientError("502"))})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        job = _job(orchestrator)
        assert summary.errors == 1
        assert job.status == JobStatus.PENDING.value
        assert job.retry_count == 1
        assert job.not_before == now + timedelta(minutes=1)
        assert "TransientError" in job.error_message

    @pytest.mark.asyncio
    async def test_retry_bound(self, db, test_settings, now):
        """max+1회 실패 → terminal failed, retry_count == max"""
        alerts = AlertChannel()
        adapter = FakeAdapter(default=TransientError("503"))
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter}, alerts=alerts)
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        run_at = now
        for _ in range(test_settings.scheduler_max_retries + 1):
            await orchestrator.run(now=run_at)
            run_at += timedelta(minutes=20)

        job = _job(orchestrator)
        assert len(adapter.calls) == 4
        assert job.status == JobStatus.FAILED.value
        assert job.retry_count == test_settings.scheduler_max_retries
        assert alerts.count("auth_failure") == 0

        # 이후 실행에서 자동으로 다시 디스패치되지 않음
        summary = await orchestrator.run(now=run_at + timedelta(hours=2))
        assert summary.total_variants == 0
        assert len(adapter.calls) == 4

    @pytest.mark.asyncio
    async def test_rate_limited_defers_without_counting(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=RateLimitedError(retry_after=60))})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        job = _job(orchestrator)
        assert summary.deferred == 1
        assert summary.errors == 0
        assert job.status == JobStatus.PENDING.value
        assert job.retry_count == 0
        assert job.not_before == hour_window(now) + timedelta(hours=1)
        assert orchestrator.ledger.remaining("stockx", now) == 0

    @pytest.mark.asyncio
    async def test_auth_failure_alerts(self, db, test_settings, now):
        alerts = AlertChannel()
        orchestrator = _orchestrator(
            db, test_settings, {"stockx": FakeAdapter(default=AuthFailureError("HTTP 401"))}, alerts=alerts
        )
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        job = _job(orchestrator)
        assert summary.errors == 1
        assert job.status == JobStatus.FAILED.value
        assert job.retry_count == 0
        assert alerts.count("auth_failure") == 1

    @pytest.mark.asyncio
    async def test_not_found_is_skipped(self, db, test_settings, now):
        TrackedProductRepository(db).track("stockx", SKU, "10", "cold")
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=NotFoundError())})

        summary = await orchestrator.run(now=now)

        assert summary.enqueued == 1
        assert summary.skipped == 1
        assert summary.errors == 0
        assert _job(orchestrator).status == JobStatus.SKIPPED.value
        tracked = TrackedProductRepository(db).list_all()[0]
        assert tracked.last_synced_at == now

    @pytest.mark.asyncio
    async def test_normalization_error_retries(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default={"variants": []})})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        with patch("src.engine.orchestrator.logger") as mock_logger:
            summary = await orchestrator.run(now=now)

        assert summary.errors == 1
        job = _job(orchestrator)
        assert job.retry_count == 1
        assert "NormalizationError" in job.error_message
        warnings = " ".join(call.args[0] for call in mock_logger.warning.call_args_list)
        assert "fingerprint=" in warnings

    @pytest.mark.asyncio
    async def test_fetch_timeout_is_transient(self, db, test_settings, now):
        config = test_settings.model_copy(update={"scheduler_fetch_timeout_s": 0.01})
        orchestrator = _orchestrator(db, config, {"stockx": FakeAdapter(default=stockx_variants(), delay=0.5)})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.errors == 1
        assert "timed out" in _job(orchestrator).error_message

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_run(self, db, test_settings, now):
        adapter = FakeAdapter(
            responses={"bad": TransientError("502"), "gone": NotFoundError()},
            default=lambda item_key, size: stockx_variants(style_id=item_key, size=size),
        )
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})
        for item_key in ("bad", "gone", "ok-1", "ok-2"):
            orchestrator.enqueue("stockx", item_key, "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.synced == 2
        assert summary.errors == 1
        assert summary.skipped == 1
        assert summary.total_variants == 4


class TestBudgetAndConcurrency:
    @pytest.mark.asyncio
    async def test_budget_never_exceeded(self, db, test_settings, now):
        config = test_settings.model_copy(update={"provider_rate_limits": {"stockx": 3}})
        adapter = FakeAdapter(default=lambda item_key, size: stockx_variants(style_id=item_key, size=size))
        orchestrator = _orchestrator(db, config, {"stockx": adapter})
        for i in range(5):
            orchestrator.enqueue("stockx", f"SKU-{i}", "10", now=now)

        first = await orchestrator.run(now=now)
        second = await orchestrator.run(now=now + timedelta(minutes=5))

        assert first.synced == 3
        assert second.total_variants == 0
        assert len(adapter.calls) == 3
        budget = BudgetRepository(db).get("stockx", hour_window(now))
        assert budget.used == 3

        third = await orchestrator.run(now=now + timedelta(hours=1))
        assert third.synced == 2

    @pytest.mark.asyncio
    async def test_provider_without_limit_is_not_dispatched(self, db, test_settings, now):
        config = test_settings.model_copy(update={"provider_rate_limits": {"alias": 10}})
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, config, {"stockx": adapter})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.total_variants == 0
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_budget_denied_releases_job(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        with patch.object(orchestrator.ledger, "try_reserve", return_value=False):
            summary = await orchestrator.run(now=now)

        assert summary.deferred == 1
        assert summary.results[0].error_message == "budget denied"
        assert _job(orchestrator).status == JobStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, db, test_settings, now):
        config = test_settings.model_copy(update={"scheduler_concurrency": 2})
        adapter = FakeAdapter(
            default=lambda item_key, size: stockx_variants(style_id=item_key, size=size),
            delay=0.02,
        )
        orchestrator = _orchestrator(db, config, {"stockx": adapter})
        for i in range(6):
            orchestrator.enqueue("stockx", f"SKU-{i}", "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.synced == 6
        assert adapter.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_batch_size_and_priority(self, db, test_settings, now):
        adapter = FakeAdapter(default=lambda item_key, size: stockx_variants(style_id=item_key, size=size))
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})
        orchestrator.enqueue("stockx", "background", "10", priority=100, now=now - timedelta(minutes=5))
        orchestrator.enqueue("stockx", "manual", "10", now=now)

        summary = await orchestrator.run(batch_size=1, now=now)

        assert summary.total_variants == 1
        assert adapter.calls == [("manual", "10")]


class TestTierIntegration:
    @pytest.mark.asyncio
    async def test_tracked_products_are_enqueued_by_tier(self, db, test_settings, now):
        tracked = TrackedProductRepository(db)
        tracked.track("stockx", SKU, "10", "hot")
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})

        first = await orchestrator.run(now=now)
        assert first.enqueued == 1
        assert first.synced == 1
        assert _job(orchestrator).priority == test_settings.priority_hot

        # hot 주기(1시간) 이전에는 다시 등록하지 않음
        second = await orchestrator.run(now=now + timedelta(minutes=30))
        assert second.enqueued == 0

        third = await orchestrator.run(now=now + timedelta(minutes=61))
        assert third.enqueued == 1
        assert len(adapter.calls) == 2

    @pytest.mark.asyncio
    async def test_mixed_case_tracked_provider_is_synced(self, db, test_settings, now):
        """"StockX"로 등록된 추적 상품도 stockx 어댑터/예산으로 처리"""
        TrackedProductRepository(db).track("StockX", SKU, "10", "hot")
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})

        summary = await orchestrator.run(now=now)

        assert summary.enqueued == 1
        assert summary.synced == 1
        assert adapter.calls == [(SKU, "10")]
        assert orchestrator.ledger.remaining("stockx", now) == test_settings.provider_rate_limits["stockx"] - 1

    @pytest.mark.asyncio
    async def test_dead_identity_not_reenqueued(self, db, test_settings, now):
        TrackedProductRepository(db).track("stockx", SKU, "10", "hot")
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=AuthFailureError())})

        await orchestrator.run(now=now)
        later = await orchestrator.run(now=now + timedelta(hours=3))

        assert later.enqueued == 0
        assert len(orchestrator.jobs.find_by_identity("stockx", SKU, "10")) == 1


class TestRunRecord:
    @pytest.mark.asyncio
    async def test_stale_running_job_is_reclaimed(self, db, test_settings, now):
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})
        orchestrator.enqueue("stockx", SKU, "10", now=now - timedelta(minutes=20))
        job = _job(orchestrator)
        orchestrator.jobs.claim(job.id, "crashed-run", now - timedelta(minutes=10))

        summary = await orchestrator.run(now=now)

        assert summary.reclaimed == 1
        assert summary.synced == 1
        record = RunRepository(db).get_by_run_id(summary.run_id)
        assert record.jobs_reclaimed == 1

    @pytest.mark.asyncio
    async def test_dry_run_does_not_mutate(self, db, test_settings, now):
        adapter = FakeAdapter(default=stockx_variants())
        orchestrator = _orchestrator(db, test_settings, {"stockx": adapter})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(dry_run=True, now=now)

        assert summary.dry_run is True
        assert summary.total_variants == 1
        assert adapter.calls == []
        assert _job(orchestrator).status == JobStatus.PENDING.value
        assert BudgetRepository(db).get("stockx", hour_window(now)) is None
        record = RunRepository(db).get_by_run_id(summary.run_id)
        assert record.dry_run is True
        assert record.status == "completed"

    @pytest.mark.asyncio
    async def test_run_record_and_provider_metrics(self, db, test_settings, now):
        adapters = {
            "stockx": FakeAdapter(default=stockx_variants()),
            "alias": FakeAdapter(default=TransientError("timeout")),
        }
        orchestrator = _orchestrator(db, test_settings, adapters)
        orchestrator.enqueue("stockx", SKU, "10", now=now)
        orchestrator.enqueue("alias", "cat-1", "10", now=now)

        summary = await orchestrator.run(now=now)

        runs = RunRepository(db)
        record = runs.get_by_run_id(summary.run_id)
        assert record.status == "completed"
        assert record.jobs_selected == 2
        assert record.jobs_succeeded == 1
        assert record.jobs_failed == 1
        metrics = {m.provider: m for m in runs.get_provider_metrics(summary.run_id)}
        assert metrics["stockx"].succeeded == 1
        assert metrics["alias"].failed == 1

    @pytest.mark.asyncio
    async def test_metrics_failure_is_best_effort(self, db, test_settings, now):
        alerts = AlertChannel()
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())}, alerts=alerts)
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        with patch.object(orchestrator.runs, "record_provider_metrics", side_effect=DatabaseException("disk full")):
            summary = await orchestrator.run(now=now)

        assert summary.synced == 1
        assert alerts.count("provider_metrics") == 1

    @pytest.mark.asyncio
    async def test_storage_failure_aborts_run(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        with patch.object(orchestrator.jobs, "select_batch", side_effect=DatabaseException("connection lost")):
            with pytest.raises(SchedulerRunException) as exc_info:
                await orchestrator.run(now=now)

        record = RunRepository(db).get_by_run_id(exc_info.value.details["run_id"])
        assert record.status == "failed"
        assert "connection lost" in record.error_message

    @pytest.mark.asyncio
    async def test_storage_failure_during_dispatch(self, db, test_settings, now):
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())})
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        with patch.object(orchestrator.prices, "upsert_latest", side_effect=DatabaseException("write failed")):
            with pytest.raises(SchedulerRunException):
                await orchestrator.run(now=now)


class TestCacheInvalidation:
    @pytest.mark.asyncio
    async def test_invalidates_logical_item(self, db, test_settings, now):
        cache = MagicMock()
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())},
                                     cache_service=cache)
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        await orchestrator.run(now=now)

        cache.invalidate.assert_called_once_with(SKU, "10", "USD")

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_fail_job(self, db, test_settings, now):
        cache = MagicMock()
        cache.invalidate.side_effect = CacheConnectionException("Failed to invalidate cache")
        alerts = AlertChannel()
        orchestrator = _orchestrator(db, test_settings, {"stockx": FakeAdapter(default=stockx_variants())},
                                     cache_service=cache, alerts=alerts)
        orchestrator.enqueue("stockx", SKU, "10", now=now)

        summary = await orchestrator.run(now=now)

        assert summary.synced == 1
        assert alerts.count("cache_invalidate") == 1


def test_adapters_required(db, test_settings):
    with pytest.raises(ValueError):
        SyncOrchestrator(db, adapters=None, config=test_settings)
