"""Tier Classifier - 티어별 재동기화 주기 및 적격 키 계산

eligible_keys()는 순수 함수입니다. 티어와 마지막 동기화 시각만 읽고
상태를 변경하지 않습니다 (동기화 시각은 잡 성공 후에만 갱신).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Protocol

from src.core.logging import logger

DEFAULT_TIER_INTERVALS_HOURS = {
    "hot": 1,
    "warm": 6,
    "cold": 24,
}


class Tier(str, Enum):
    """재동기화 주기 분류"""

    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class TrackedRow(Protocol):
    provider: str
    item_key: str
    size: str
    tier: str
    last_synced_at: Optional[datetime]


@dataclass(frozen=True)
class TrackedKey:
    """동기화 대상 키"""

    provider: str
    item_key: str
    size: str
    tier: Tier


def parse_tier(value: Optional[str]) -> Tier:
    """문자열 → Tier (알 수 없는 값은 cold)"""
    try:
        return Tier((value or "").strip().lower())
    except ValueError:
        logger.warning(f"[Tier] Unknown tier '{value}', treating as cold")
        return Tier.COLD


def tier_interval(tier: Tier, intervals_hours: Optional[dict[str, int]] = None) -> timedelta:
    """티어별 재동기화 간격"""
    intervals = intervals_hours or DEFAULT_TIER_INTERVALS_HOURS
    return timedelta(hours=intervals[tier.value])


def eligible_keys(
    products: Iterable[TrackedRow],
    now: datetime,
    intervals_hours: Optional[dict[str, int]] = None,
) -> List[TrackedKey]:
    """재동기화 대상 키 계산

    age = now - last_synced_at (동기화 이력이 없으면 무한대) 가
    티어 간격 이상이면 대상입니다.

    Returns:
        hot → warm → cold, 같은 티어에서는 오래된 순으로 정렬된 키 목록
    """
    order = {Tier.HOT: 0, Tier.WARM: 1, Tier.COLD: 2}
    eligible: List[tuple] = []
    for product in products:
        tier = parse_tier(product.tier)
        if product.last_synced_at is not None:
            age = now - product.last_synced_at
            if age < tier_interval(tier, intervals_hours):
                continue
        synced_at = product.last_synced_at or datetime.min
        key = TrackedKey(
            provider=product.provider,
            item_key=product.item_key,
            size=product.size or "",
            tier=tier,
        )
        eligible.append((order[tier], synced_at, key))
    eligible.sort(key=lambda entry: (entry[0], entry[1]))
    return [key for _, _, key in eligible]


class TierClassifier:
    """티어 분류기

    Usage:
        classifier = TierClassifier(TrackedProductRepository(db))
        for key in classifier.eligible_keys(now):
            job_repo.enqueue(key.provider, key.item_key, key.size, classifier.priority_for(key.tier))
    """

    def __init__(
        self,
        repository,
        intervals_hours: Optional[dict[str, int]] = None,
        priority_hot: int = 150,
        priority_background: int = 100,
    ):
        self.repository = repository
        self.intervals_hours = intervals_hours or DEFAULT_TIER_INTERVALS_HOURS
        self.priority_hot = priority_hot
        self.priority_background = priority_background

    def eligible_keys(self, now: datetime) -> List[TrackedKey]:
        """추적 대상 중 재동기화가 필요한 키"""
        return eligible_keys(self.repository.list_all(), now, self.intervals_hours)

    def priority_for(self, tier: Tier) -> int:
        """티어별 잡 우선순위"""
        if tier == Tier.HOT:
            return self.priority_hot
        return self.priority_background
