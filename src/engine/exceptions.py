"""Provider Exceptions - 프로바이더 호출/정규화 오류 분류

스케줄러는 이 분류에 따라 잡의 다음 상태를 결정합니다 (strategy.RetryStrategy).
"""

from typing import Optional


class ProviderError(Exception):
    """프로바이더 기본 예외"""

    def __init__(self, message: str = "", provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message or self.__class__.__name__)


class RateLimitedError(ProviderError):
    """호출 한도 초과 (HTTP 429)

    잡 실패가 아니며 다음 시간 윈도우로 연기됩니다.
    """

    def __init__(
        self,
        message: str = "",
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, provider)


class AuthFailureError(ProviderError):
    """인증 실패 (HTTP 401/403)

    자격 증명 문제이므로 재시도 없이 즉시 실패 처리하고 알림을 보냅니다.
    """

    pass


class NotFoundError(ProviderError):
    """상품 없음 (HTTP 404) - 영구 스킵"""

    pass


class TransientError(ProviderError):
    """일시적 오류 (네트워크, 5xx, 타임아웃)"""

    pass


class NormalizationError(ProviderError):
    """페이로드가 표준 스냅샷 계약을 위반

    원본 대신 fingerprint를 로그에 남깁니다.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ):
        self.fingerprint = fingerprint
        super().__init__(message, provider)
