"""범용 HTTP 프로바이더 어댑터

`{base_url}/{item_key}` (size가 있으면 `?size=`) 를 조회하고
HTTP 상태를 오류 분류로 변환합니다.
- 429 → RateLimitedError (Retry-After 헤더 보존)
- 401/403 → AuthFailureError
- 404 → NotFoundError
- 그 외 4xx/5xx, 네트워크 오류, 비-JSON 바디 → TransientError
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

from src.core.logging import logger
from src.engine.exceptions import (
    AuthFailureError,
    NotFoundError,
    RateLimitedError,
    TransientError,
)
from src.providers.http_client import SharedHttpClient, get_shared_http_client


def _retry_after(headers: Dict[str, str]) -> Optional[float]:
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    return None


class HttpProviderAdapter:
    """JSON API 프로바이더 어댑터"""

    def __init__(
        self,
        provider: str,
        base_url: str,
        token: Optional[str] = None,
        timeout_s: float = 30.0,
        client: Optional[SharedHttpClient] = None,
    ):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.client = client or get_shared_http_client()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def fetch(self, item_key: str, size: str) -> Any:
        url = f"{self.base_url}/{quote(item_key, safe='')}"
        params = {"size": size} if size else None
        try:
            response = await self.client.get_json(
                url, timeout_s=self.timeout_s, headers=self._headers(), params=params
            )
        except Exception as e:
            logger.info(f"[{self.provider}] fetch failed: {type(e).__name__}: {e}")
            raise TransientError(f"network error: {type(e).__name__}", provider=self.provider) from e

        status = response.status
        if status == 429:
            raise RateLimitedError(
                "rate limited by upstream",
                provider=self.provider,
                retry_after=_retry_after(response.headers),
            )
        if status in (401, 403):
            raise AuthFailureError(f"upstream rejected credentials (HTTP {status})", provider=self.provider)
        if status == 404:
            raise NotFoundError(f"{item_key} not found", provider=self.provider)
        if status >= 400 or status == 0:
            raise TransientError(f"upstream error (HTTP {status})", provider=self.provider)
        if response.body is None:
            raise TransientError("empty or non-JSON response body", provider=self.provider)
        return response.body
