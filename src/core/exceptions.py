"""도메인 예외 계층

HTTP 계층(src.app)이 error_code로 응답을 만들고, 스케줄러는 SchedulerRunException만
실행 중단으로 취급합니다. 프로바이더 호출 오류는 src.engine.exceptions 참고.
"""
from typing import Any, Optional


class MarketSyncException(Exception):
    """모든 도메인 예외의 부모 (message / error_code / details)"""

    default_code = "UNKNOWN_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# Redis resolved price 캐시
class CacheException(MarketSyncException):
    default_code = "CACHE_ERROR"


class CacheConnectionException(CacheException):
    """Redis 연결/명령 실패 - 호출 측은 DB 조회로 대체"""
    default_code = "CACHE_CONNECTION_ERROR"


class CacheSerializationException(CacheException):
    """캐시 값이 ResolvedPriceResponse로 역직렬화되지 않음"""
    default_code = "CACHE_SERIALIZATION_ERROR"


# Job Store / Budget Ledger / Price Cache 저장소
class DatabaseException(MarketSyncException):
    """저장소 오류. 동기화 실행 중 발생하면 실행 전체가 중단됨"""
    default_code = "DB_ERROR"


class ValidationException(MarketSyncException):
    """요청/웹훅 페이로드 검증 실패"""

    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            f"Validation failed for '{field}': {reason}",
            "VALIDATION_ERROR",
            details or {"field": field, "reason": reason},
        )


class AuthenticationException(MarketSyncException):
    """공유 시크릿/서명 검증 실패"""

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"Authentication failed: {reason}", "UNAUTHORIZED", details)


class SchedulerRunException(MarketSyncException):
    """동기화 실행 중단 (run_id 포함)"""

    def __init__(self, run_id: str, reason: str, details: Optional[dict[str, Any]] = None):
        self.run_id = run_id
        super().__init__(
            f"Scheduler run {run_id} aborted: {reason}",
            "SCHEDULER_RUN_FAILED",
            details or {"run_id": run_id, "reason": reason},
        )
