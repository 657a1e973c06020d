"""Provider registry - 닫힌 프로바이더 집합과 우선순위 테이블

모든 비교/정렬 로직은 PROVIDER_RANK 하나만 참조합니다.
"""

from enum import Enum
from typing import Any, Optional, Protocol, Union


class Provider(str, Enum):
    """마켓 데이터 프로바이더"""

    STOCKX = "stockx"
    ALIAS = "alias"
    EBAY = "ebay"
    SEED = "seed"


# 낮을수록 우선
PROVIDER_RANK: dict[Provider, int] = {
    Provider.STOCKX: 0,
    Provider.ALIAS: 1,
    Provider.EBAY: 2,
    Provider.SEED: 3,
}

UNKNOWN_RANK = 999


def parse_provider(value: Union[str, Provider, None]) -> Optional[Provider]:
    """문자열 → Provider (미등록 프로바이더는 None)"""
    if isinstance(value, Provider):
        return value
    if not value:
        return None
    try:
        return Provider(str(value).strip().lower())
    except ValueError:
        return None


def provider_key(value: Union[str, Provider]) -> str:
    """저장용 프로바이더 키 (등록 프로바이더는 enum 값, 그 외는 소문자)"""
    provider = parse_provider(value)
    if provider is not None:
        return provider.value
    return str(value).strip().lower()


def provider_rank(value: Union[str, Provider, None]) -> int:
    """프로바이더 우선순위 (미등록 프로바이더는 항상 최하위)"""
    provider = parse_provider(value)
    if provider is None:
        return UNKNOWN_RANK
    return PROVIDER_RANK[provider]


class ProviderAdapter(Protocol):
    """프로바이더 어댑터 인터페이스

    HTTP/인증 세부사항은 어댑터가 책임지고, 실패는 engine.exceptions의
    ProviderError 하위 타입으로 알려야 합니다.
    """

    async def fetch(self, item_key: str, size: str) -> Any:
        """원본 페이로드 조회

        Args:
            item_key: 프로바이더 상품 키
            size: 사이즈 ("" 는 전체 사이즈)

        Returns:
            프로바이더 원본 페이로드

        Raises:
            RateLimitedError: HTTP 429
            AuthFailureError: HTTP 401/403
            NotFoundError: HTTP 404
            TransientError: 네트워크 오류, 5xx 등
        """
        ...
