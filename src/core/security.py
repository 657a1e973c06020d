"""
공유 시크릿 / 웹훅 서명 검증
"""

import hashlib
import hmac
from typing import Optional

from fastapi import Header

from src.core.config import settings
from src.core.exceptions import AuthenticationException
from src.core.logging import logger, sanitize_for_log


SIGNATURE_PREFIX = "sha256="


class SecurityValidator:
    """요청 인증 검증"""

    @staticmethod
    def verify_shared_secret(provided: Optional[str], expected: str) -> bool:
        """공유 시크릿 헤더 검증 (상수 시간 비교)

        Args:
            provided: 요청 헤더 값
            expected: 설정된 시크릿

        Returns:
            유효성 여부. 시크릿이 설정되지 않았으면 항상 False.
        """
        if not expected or not provided:
            return False
        return hmac.compare_digest(provided.encode(), expected.encode())

    @staticmethod
    def compute_signature(payload: bytes, secret: str) -> str:
        """HMAC-SHA256 서명 계산 ("sha256=<hex>" 포맷)"""
        digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
        """웹훅 서명 검증

        Args:
            payload: 원본 요청 바디
            signature: "sha256=<hex>" 형식의 서명 헤더
            secret: 웹훅 시크릿

        Returns:
            유효성 여부
        """
        if not secret or not signature:
            return False

        if not signature.startswith(SIGNATURE_PREFIX):
            logger.warning(f"[Webhook] Invalid signature format: {sanitize_for_log(signature, 20)}")
            return False

        expected = SecurityValidator.compute_signature(payload, secret)
        return hmac.compare_digest(signature.encode(), expected.encode())


def require_scheduler_secret(
    x_scheduler_secret: Optional[str] = Header(default=None),
) -> None:
    """FastAPI Dependency: 스케줄러/운영 엔드포인트 인증

    Raises:
        AuthenticationException: 시크릿 불일치 또는 미설정
    """
    if not SecurityValidator.verify_shared_secret(x_scheduler_secret, settings.scheduler_secret):
        logger.warning("[API] Scheduler secret rejected")
        raise AuthenticationException("invalid scheduler secret")

