"""Preference Resolver - 여러 프로바이더 스냅샷 중 대표 가격 선택

정렬 기준 (total order):
1. 가격 필드가 모두 비어 있는 스냅샷 제외
2. 프로바이더 우선순위 (providers.PROVIDER_RANK, 미등록은 999)
3. 같은 우선순위 내에서는 as_of 최신순
4. 그래도 같으면 item_key 사전순
"""

from typing import Iterable, List, Optional

from src.engine.providers import provider_rank
from src.schemas.market_schema import MarketSnapshot


def rank_snapshots(snapshots: Iterable[MarketSnapshot]) -> List[MarketSnapshot]:
    """가격이 있는 스냅샷을 선호 순서대로 정렬"""
    candidates = [s for s in snapshots if s.has_price]
    # stable sort: 마지막 정렬 키가 최우선
    candidates.sort(key=lambda s: s.item_key)
    candidates.sort(key=lambda s: s.as_of, reverse=True)
    candidates.sort(key=lambda s: provider_rank(s.provider))
    return candidates


class PreferenceResolver:
    """대표 스냅샷 선택기

    Usage:
        resolver = PreferenceResolver()
        best = resolver.resolve(snapshots)
        price = best.market_price if best else None
    """

    @staticmethod
    def resolve(snapshots: Iterable[MarketSnapshot]) -> Optional[MarketSnapshot]:
        """대표 스냅샷 선택

        Args:
            snapshots: 같은 논리 아이템에 대한 프로바이더별 스냅샷

        Returns:
            우선순위가 가장 높은 스냅샷. 후보가 없으면 None.
        """
        ranked = rank_snapshots(snapshots)
        if not ranked:
            return None
        return ranked[0]
