"""Tier Classifier 유닛 테스트"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from src.engine.tiers import Tier, TierClassifier, eligible_keys, parse_tier, tier_interval
from src.repositories.impl.tracked_product_repository import TrackedProductRepository


@dataclass
class Row:
    provider: str
    item_key: str
    size: str
    tier: str
    last_synced_at: Optional[datetime]


NOW = datetime(2025, 1, 10, 12, 0)


class TestEligibleKeys:
    def test_never_synced_is_eligible(self):
        keys = eligible_keys([Row("stockx", "A", "10", "cold", None)], NOW)
        assert [k.item_key for k in keys] == ["A"]

    def test_interval_per_tier(self):
        rows = [
            Row("stockx", "hot-fresh", "", "hot", NOW - timedelta(minutes=59)),
            Row("stockx", "hot-due", "", "hot", NOW - timedelta(hours=1)),
            Row("stockx", "warm-fresh", "", "warm", NOW - timedelta(hours=5)),
            Row("stockx", "warm-due", "", "warm", NOW - timedelta(hours=7)),
            Row("stockx", "cold-fresh", "", "cold", NOW - timedelta(hours=23)),
            Row("stockx", "cold-due", "", "cold", NOW - timedelta(hours=25)),
        ]

        keys = eligible_keys(rows, NOW)

        assert [k.item_key for k in keys] == ["hot-due", "warm-due", "cold-due"]

    def test_order_hot_first_then_oldest(self):
        rows = [
            Row("alias", "cold-old", "", "cold", NOW - timedelta(days=3)),
            Row("alias", "hot-recent", "", "hot", NOW - timedelta(hours=2)),
            Row("alias", "hot-never", "", "hot", None),
            Row("alias", "cold-older", "", "cold", NOW - timedelta(days=5)),
        ]

        keys = eligible_keys(rows, NOW)

        assert [k.item_key for k in keys] == ["hot-never", "hot-recent", "cold-older", "cold-old"]
        assert keys[0].tier is Tier.HOT

    def test_custom_intervals(self):
        rows = [Row("ebay", "A", "9", "hot", NOW - timedelta(minutes=20))]
        assert eligible_keys(rows, NOW, {"hot": 1, "warm": 6, "cold": 24}) == []
        assert tier_interval(Tier.WARM, {"hot": 1, "warm": 3, "cold": 12}) == timedelta(hours=3)

    def test_is_pure(self):
        row = Row("stockx", "A", "10", "hot", None)
        eligible_keys([row], NOW)
        assert row.last_synced_at is None


class TestParseTier:
    def test_known(self):
        assert parse_tier("HOT") is Tier.HOT
        assert parse_tier(" warm ") is Tier.WARM

    def test_unknown_is_cold(self):
        assert parse_tier("lukewarm") is Tier.COLD
        assert parse_tier(None) is Tier.COLD


class TestTierClassifier:
    def test_reads_tracked_products(self, db):
        repo = TrackedProductRepository(db)
        repo.track("stockx", "DD1391-100", "10", "hot")
        repo.track("alias", "cat-1", "10", "warm")
        repo.mark_synced("alias", "cat-1", "10", NOW - timedelta(hours=1))

        classifier = TierClassifier(repo)
        keys = classifier.eligible_keys(NOW)

        assert [(k.provider, k.item_key, k.size) for k in keys] == [("stockx", "DD1391-100", "10")]

    def test_track_updates_tier(self, db):
        repo = TrackedProductRepository(db)
        repo.track("stockx", "DD1391-100", "10", "cold")
        repo.track("stockx", "DD1391-100", "10", "hot")

        rows = repo.list_all()
        assert len(rows) == 1
        assert rows[0].tier == "hot"

    def test_track_canonicalizes_provider(self, db):
        repo = TrackedProductRepository(db)
        repo.track("StockX", "DD1391-100", "10", "hot")
        repo.track("stockx", "DD1391-100", "10", "warm")

        rows = repo.list_all()
        assert [(r.provider, r.tier) for r in rows] == [("stockx", "warm")]
        assert repo.mark_synced("STOCKX", "DD1391-100", "10", NOW) is True

    def test_mark_synced_untracked(self, db):
        assert TrackedProductRepository(db).mark_synced("stockx", "missing", "", NOW) is False

    def test_priority_for(self, db):
        classifier = TierClassifier(TrackedProductRepository(db), priority_hot=150, priority_background=100)
        assert classifier.priority_for(Tier.HOT) == 150
        assert classifier.priority_for(Tier.WARM) == 100
        assert classifier.priority_for(Tier.COLD) == 100
