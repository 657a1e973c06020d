"""공유 HTTP 클라이언트 (curl_cffi)

- 프로바이더 어댑터마다 AsyncSession을 만들지 않고 프로세스 단위로 재사용합니다.
- 앱 종료 시 close()로 정리합니다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from curl_cffi.requests import AsyncSession

from src.core.logging import logger


@dataclass
class HttpResponse:
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class SharedHttpClient:
    def __init__(self, impersonate: str = "chrome", max_clients: int = 20) -> None:
        self._lock = asyncio.Lock()
        self._session: Optional[AsyncSession] = None
        self.impersonate = impersonate
        self.max_clients = max_clients

    async def _ensure_session(self) -> AsyncSession:
        async with self._lock:
            if self._session is not None:
                return self._session
            self._session = AsyncSession(
                impersonate=self.impersonate,
                headers=self.default_headers(),
                max_clients=self.max_clients,
                trust_env=False,
            )
            return self._session

    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def get_json(
        self,
        url: str,
        *,
        timeout_s: float,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """GET 요청 후 JSON 바디 반환

        네트워크 오류는 호출자에게 그대로 전파됩니다.
        """
        sess = await self._ensure_session()
        resp = await sess.get(url, headers=headers, params=params, timeout=timeout_s)
        status = getattr(resp, "status_code", 0) or 0
        body: Any = None
        if status < 400:
            try:
                body = resp.json()
            except ValueError:
                logger.info(f"[HTTP_CLIENT] Non-JSON body from {url} (status={status})")
                body = None
        return HttpResponse(status=status, body=body, headers=dict(getattr(resp, "headers", {}) or {}))

    async def close(self) -> None:
        async with self._lock:
            if self._session is None:
                return
            try:
                await self._session.close()
            except Exception as e:
                logger.info(f"[HTTP_CLIENT] close failed: {type(e).__name__}")
            self._session = None


_shared_http_client = SharedHttpClient()


def get_shared_http_client() -> SharedHttpClient:
    return _shared_http_client


async def shutdown_shared_http_client() -> None:
    await _shared_http_client.close()
