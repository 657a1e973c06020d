"""프로바이더 어댑터 레지스트리"""

from typing import Dict, Iterator, List, Optional

from src.core.logging import logger
from src.engine.providers import ProviderAdapter, parse_provider
from src.providers.http_adapter import HttpProviderAdapter


class AdapterRegistry:
    """프로바이더 이름 → 어댑터"""

    def __init__(self) -> None:
        self._adapters: Dict[str, ProviderAdapter] = {}

    def register(self, provider: str, adapter: ProviderAdapter) -> None:
        parsed = parse_provider(provider)
        if parsed is None:
            raise ValueError(f"unknown provider: {provider}")
        self._adapters[parsed.value] = adapter

    def get(self, provider: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(provider.lower())

    def providers(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, provider: str) -> bool:
        return provider.lower() in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)


def build_registry(
    base_urls: Dict[str, str],
    tokens: Optional[Dict[str, str]] = None,
    timeout_s: float = 30.0,
) -> AdapterRegistry:
    """설정된 base URL마다 HTTP 어댑터 등록"""
    tokens = tokens or {}
    registry = AdapterRegistry()
    for provider, base_url in base_urls.items():
        if not base_url:
            continue
        try:
            registry.register(
                provider,
                HttpProviderAdapter(provider.lower(), base_url, tokens.get(provider), timeout_s),
            )
        except ValueError:
            logger.warning(f"[Scheduler] Ignoring adapter for unknown provider '{provider}'")
    return registry
