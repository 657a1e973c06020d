"""알림 사이드 채널 - best-effort

자격 증명 실패, 부가 기록 실패 등을 운영자에게 알립니다.
이 채널의 실패는 호출자에게 전파되지 않습니다.
"""
from collections import Counter
from typing import Any, Optional

from src.core.logging import logger, sanitize_for_log


class AlertChannel:
    """운영 알림 채널

    Usage:
        alerts = AlertChannel()
        alerts.critical("auth_failure", "stockx credentials rejected", job_id=12)
        alerts.counts["auth_failure"]  # → 1
    """

    def __init__(self) -> None:
        self.counts: Counter = Counter()

    def critical(self, kind: str, message: str, **context: Any) -> None:
        """즉시 조치가 필요한 알림 (예: 인증 실패)"""
        self._emit("CRITICAL", kind, message, context)

    def error(self, kind: str, message: str, **context: Any) -> None:
        """best-effort 작업 실패 (예: 실행 지표 기록 실패)"""
        self._emit("ERROR", kind, message, context)

    def count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return sum(self.counts.values())
        return self.counts[kind]

    def _emit(self, level: str, kind: str, message: str, context: dict) -> None:
        try:
            self.counts[kind] += 1
            details = " ".join(
                f"{key}={sanitize_for_log(str(value), 80)}" for key, value in sorted(context.items())
            )
            line = f"[Alert] {kind}: {message}" + (f" ({details})" if details else "")
            if level == "CRITICAL":
                logger.critical(line)
            else:
                logger.error(line)
        except Exception:  # noqa: BLE001
            # 알림 채널은 예외를 전파하지 않음
            pass
