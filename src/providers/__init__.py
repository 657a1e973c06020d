"""Provider adapters - 마켓플레이스 HTTP 호출 및 오류 분류."""

from .http_adapter import HttpProviderAdapter
from .registry import AdapterRegistry, build_registry

__all__ = ["AdapterRegistry", "HttpProviderAdapter", "build_registry"]
