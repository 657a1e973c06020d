"""Redis 캐시 서비스 - 논리 아이템별 resolved price 캐시"""
from typing import Any, Callable, Optional

from pydantic import ValidationError
from redis import Redis

from src.core.logging import logger
from src.core.exceptions import (
    CacheConnectionException,
    CacheSerializationException,
)
from src.schemas.market_schema import ResolvedPriceResponse
from src.utils.hash_utils import generate_resolved_cache_key


class CacheService:
    """Redis resolved price 캐시

    (sku, size, currency) 단위로 PreferenceResolver 결과를 TTL 동안 보관하며,
    같은 논리 아이템의 새 스냅샷이 저장되면 invalidate 됩니다.
    Redis 오류는 모두 CacheConnectionException으로 올려 보내고,
    DB로 대체할지는 호출 측이 결정합니다.
    """

    def __init__(self, redis_url: str, ttl_seconds: int = 900):
        self.ttl_seconds = ttl_seconds
        self.redis_client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self._run("connect", self.redis_client.ping)
        logger.info("Redis connection established")

    def _run(self, operation: str, command: Callable[..., Any], *args: Any) -> Any:
        try:
            return command(*args)
        except Exception as e:
            logger.error(f"[Cache] Redis {operation} failed: {e}")
            raise CacheConnectionException(
                f"Redis {operation} failed",
                details={"operation": operation, "reason": str(e)},
            ) from e

    def get(self, sku: str, size: str, currency: str) -> Optional[ResolvedPriceResponse]:
        """
        캐시된 resolved price 조회

        Returns:
            ResolvedPriceResponse 또는 None (miss)

        Raises:
            CacheConnectionException: Redis 오류
            CacheSerializationException: 저장된 값이 손상된 경우
        """
        cache_key = generate_resolved_cache_key(sku, size, currency)
        raw = self._run("get", self.redis_client.get, cache_key)
        if not raw:
            logger.debug(f"[Cache] miss {cache_key}")
            return None

        try:
            return ResolvedPriceResponse.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"[Cache] Corrupted entry {cache_key}: {e.error_count()} error(s)")
            raise CacheSerializationException(
                "Failed to deserialize cached resolved price",
                details={"key": cache_key},
            ) from e

    def set(self, resolved: ResolvedPriceResponse) -> bool:
        cache_key = generate_resolved_cache_key(resolved.sku, resolved.size, resolved.currency)
        self._run("setex", self.redis_client.setex, cache_key, self.ttl_seconds, resolved.model_dump_json())
        logger.debug(f"[Cache] set {cache_key} (ttl={self.ttl_seconds}s)")
        return True

    def invalidate(self, sku: str, size: str, currency: str) -> bool:
        """논리 아이템 캐시 삭제. 삭제된 키가 있었는지 반환"""
        cache_key = generate_resolved_cache_key(sku, size, currency)
        deleted = self._run("delete", self.redis_client.delete, cache_key)
        if deleted:
            logger.debug(f"[Cache] invalidated {cache_key}")
        return deleted > 0

    def health_check(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except Exception:
            return False


def build_cache_service(redis_url: str, ttl_seconds: int) -> Optional[CacheService]:
    """설정에서 캐시 서비스 생성 (URL 미설정/연결 실패 시 None → 캐시 없이 동작)"""
    if not redis_url:
        logger.info("Redis URL not configured; resolved price cache disabled")
        return None
    try:
        return CacheService(redis_url, ttl_seconds)
    except CacheConnectionException as e:
        logger.warning(f"Resolved price cache disabled: {e}")
        return None
