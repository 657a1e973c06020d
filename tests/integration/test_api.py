"""API 통합 테스트 (TestClient + dependency overrides)"""
import json
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAdapter, stockx_variants
from src.api.dependencies import get_adapters, get_alerts, get_cache_service
from src.app import create_app
from src.core.config import settings
from src.core.database import get_db
from src.core.security import SecurityValidator
from src.engine.budget import BudgetLedger
from src.repositories.impl.budget_repository import BudgetRepository
from src.repositories.impl.job_repository import JobRepository
from src.repositories.impl.listing_repository import ListingRepository
from src.repositories.impl.price_cache_repository import PriceCacheRepository
from src.schemas.market_schema import MarketSnapshot
from src.services.impl.alert_channel import AlertChannel

SCHEDULER_HEADERS = {"X-Scheduler-Secret": "test-scheduler-secret"}


@pytest.fixture
def adapter():
    return FakeAdapter(default=stockx_variants())


@pytest.fixture
def alerts():
    return AlertChannel()


@pytest.fixture
def client(db, adapter, alerts, monkeypatch):
    monkeypatch.setattr(settings, "scheduler_secret", "test-scheduler-secret")
    monkeypatch.setattr(settings, "webhook_secret", "test-webhook-secret")

    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_adapters] = lambda: {"stockx": adapter}
    app.dependency_overrides[get_cache_service] = lambda: None
    app.dependency_overrides[get_alerts] = lambda: alerts
    return TestClient(app)


class TestHealthAPI:
    """헬스 체크 API 테스트"""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data
        assert "version" in data

    def test_root_endpoint(self, client):
        data = client.get("/").json()
        assert data["service"] == "market-sync"

    def test_job_stats(self, client, db):
        JobRepository(db).enqueue("stockx", "DD1391-100", "10")

        data = client.get("/health/jobs").json()

        assert data["jobs"] == {"pending": 1}
        limit = settings.provider_rate_limits["stockx"]
        assert data["budgets"]["stockx"] == {"limit": limit, "remaining": limit}

    def test_job_stats_reports_spent_budget(self, client, db):
        """현재 윈도우에서 사용한 예산이 remaining에 반영"""
        ledger = BudgetLedger(BudgetRepository(db), settings.provider_rate_limits)
        assert ledger.try_reserve("alias", n=3)

        budgets = client.get("/health/jobs").json()["budgets"]

        assert budgets["alias"]["remaining"] == settings.provider_rate_limits["alias"] - 3


class TestSchedulerAPI:
    def test_requires_secret(self, client):
        response = client.post("/scheduler/run")

        assert response.status_code == 401
        body = response.json()
        assert body["status"] == "fail"
        assert body["error_code"] == "UNAUTHORIZED"

    def test_wrong_secret(self, client):
        response = client.post("/scheduler/run", headers={"X-Scheduler-Secret": "guess"})
        assert response.status_code == 401

    def test_run_response_shape(self, client, adapter):
        client.post(
            "/scheduler/jobs",
            json={"provider": "stockx", "itemKey": "DD1391-100", "size": "10"},
            headers=SCHEDULER_HEADERS,
        )

        response = client.post("/scheduler/run", headers=SCHEDULER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["synced"] == 1
        assert data["errors"] == 0
        assert data["totalVariants"] == 1
        assert data["durationMs"] >= 0
        assert data["dryRun"] is False
        assert "runId" in data
        assert adapter.calls == [("DD1391-100", "10")]

    def test_dry_run(self, client, adapter):
        client.post("/scheduler/jobs", json={"provider": "stockx", "itemKey": "DD1391-100"},
                    headers=SCHEDULER_HEADERS)

        data = client.post("/scheduler/run", json={"batchSize": 5, "dryRun": True},
                           headers=SCHEDULER_HEADERS).json()

        assert data["dryRun"] is True
        assert data["totalVariants"] == 1
        assert adapter.calls == []

    def test_enqueue_dedup(self, client):
        payload = {"provider": "StockX", "itemKey": "DD1391-100", "size": "10"}

        first = client.post("/scheduler/jobs", json=payload, headers=SCHEDULER_HEADERS).json()
        second = client.post("/scheduler/jobs", json=payload, headers=SCHEDULER_HEADERS).json()

        assert first == {"created": True, "priority": settings.priority_manual}
        assert second["created"] is False

    def test_enqueue_unknown_provider(self, client):
        response = client.post("/scheduler/jobs", json={"provider": "goat", "itemKey": "x"},
                               headers=SCHEDULER_HEADERS)
        assert response.status_code == 422

    def test_reset_failed_jobs(self, client, db):
        jobs = JobRepository(db)
        jobs.enqueue("stockx", "DD1391-100", "10")
        job = jobs.find_by_identity("stockx", "DD1391-100", "10")[0]
        jobs.claim(job.id, "run-1")
        jobs.mark_failed(job.id, "AuthFailureError")

        response = client.post("/scheduler/jobs/reset", headers=SCHEDULER_HEADERS)

        assert response.json() == {"reset": 1}

    def test_list_runs(self, client):
        client.post("/scheduler/run", headers=SCHEDULER_HEADERS)

        runs = client.get("/scheduler/runs?limit=5", headers=SCHEDULER_HEADERS).json()["runs"]

        assert len(runs) == 1
        assert runs[0]["status"] == "completed"


class TestMarketPriceAPI:
    def test_not_found(self, client):
        assert client.get("/market/prices/DD1391-100/10").status_code == 404

    def test_resolved_price(self, client, db):
        prices = PriceCacheRepository(db)
        for provider, item_key, as_of in (
            ("ebay", "ebay:DD1391-100:10:new:good_condition:standard:EBAY_US", datetime(2025, 1, 10)),
            ("stockx", "stockx:var-10", datetime(2025, 1, 1)),
        ):
            prices.upsert_latest(MarketSnapshot(
                item_key=item_key, currency="USD", provider=provider, sku="DD1391-100", size="10",
                lowest_ask=Decimal("150.00"), highest_bid=Decimal("130.00"), as_of=as_of,
            ))

        response = client.get("/market/prices/DD1391-100/10?currency=usd")

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "stockx"
        assert Decimal(str(data["market_price"])) == Decimal("130.00")
        assert data["is_stale"] is True
        assert data["source"] == "db"

    def test_invalid_currency(self, client):
        assert client.get("/market/prices/DD1391-100/10?currency=US1").status_code == 422


class TestWebhookAPI:
    def _post(self, client, event: dict, secret: str = "test-webhook-secret"):
        body = json.dumps(event).encode()
        signature = SecurityValidator.compute_signature(body, secret)
        return client.post(
            "/webhooks/alias",
            content=body,
            headers={"X-Alias-Signature": signature, "Content-Type": "application/json"},
        )

    def test_bad_signature(self, client):
        response = self._post(client, {"id": "evt-1", "type": "order.created"}, secret="wrong")
        assert response.status_code == 401

    def test_missing_signature(self, client):
        response = client.post("/webhooks/alias", json={"id": "evt-1", "type": "order.created"})
        assert response.status_code == 401

    def test_listing_update_and_duplicate(self, client, db):
        ListingRepository(db).create("alias", "lst-1", status="active")
        event = {
            "id": "evt-1",
            "type": "listing.status.changed",
            "created_at": "2025-01-10T12:00:00Z",
            "data": {"listing_id": "lst-1", "status": "sold"},
        }

        first = self._post(client, event).json()
        second = self._post(client, event).json()

        assert first == {"received": True, "duplicate": False, "outcome": "processed"}
        assert second["duplicate"] is True

    def test_orphaned_listing(self, client):
        event = {"id": "evt-2", "type": "listing.price.changed",
                 "data": {"listing_id": "unknown", "price_cents": "15000"}}
        assert self._post(client, event).json()["outcome"] == "orphaned"

    def test_invalid_payload(self, client):
        response = self._post(client, {"type": "order.created"})

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"
