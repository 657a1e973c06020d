"""해싱 유틸리티"""
import hashlib
import json
from typing import Any


def hash_string(text: str) -> str:
    """
    문자열을 SHA256 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        SHA256 hex 문자열
    """
    return hashlib.sha256(text.encode()).hexdigest()


def payload_fingerprint(payload: Any) -> str:
    """원본 페이로드 진단용 지문 (16자)

    정규화 실패 로그에 원본 대신 남깁니다.
    """
    try:
        canonical = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        canonical = repr(payload)
    return hash_string(canonical)[:16]


def generate_resolved_cache_key(sku: str, size: str, currency: str) -> str:
    """
    논리 아이템(sku, size, currency) 단위 resolved price 캐시 키 생성

    Args:
        sku: 상품 스타일 코드
        size: 사이즈
        currency: 통화 코드

    Returns:
        Redis 캐시 키
    """
    raw = f"{sku.strip().upper()}|{size.strip()}|{currency.strip().upper()}"
    return f"market:resolved:{hash_string(raw)[:32]}"
