"""시간 유틸리티

DB에는 timezone 정보 없는 UTC datetime을 저장합니다 (SQLite/PostgreSQL 공통).
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """현재 UTC 시각 (naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """aware datetime을 naive UTC로 변환 (naive는 UTC로 간주)"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def hour_window(now: Optional[datetime] = None) -> datetime:
    """현재 시각이 속한 정시 버킷 시작 시각"""
    now = now or utcnow()
    return now.replace(minute=0, second=0, microsecond=0)


def next_hour_window(now: Optional[datetime] = None) -> datetime:
    """다음 정시 버킷 시작 시각"""
    return hour_window(now) + timedelta(hours=1)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 문자열 / epoch 초 / datetime을 naive UTC로 변환

    Returns:
        변환 결과. 파싱 불가 시 None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None
