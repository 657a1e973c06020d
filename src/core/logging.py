"""로깅 설정

- 애플리케이션 로거: "market_sync" (컴포넌트는 메시지 prefix로 구분: [Scheduler], [Budget], ...)
- 써드파티 로거(apscheduler, sqlalchemy.engine, curl_cffi)는 WARNING 이상만
- 로그에 남는 값은 sanitize_for_log로 자격 증명을 가림
"""
import logging
import os
import re
import sys
from typing import Optional

from src.core.config import settings

APP_LOGGER_NAME = "market_sync"

NOISY_LOGGERS = ("apscheduler", "sqlalchemy.engine", "curl_cffi")

# production에서는 DEBUG 강제 상향
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"

_PRODUCTION_FORMAT = "%(asctime)s %(levelname)s %(message)s"
_DEVELOPMENT_FORMAT = "%(asctime)s %(levelname)-8s %(module)s.%(funcName)s:%(lineno)d %(message)s"

# key=value, key: value, "Bearer <token>" 형태의 자격 증명
_SECRET_PATTERN = re.compile(
    r"(?i)\b(password|passwd|token|api[_-]?key|secret|authorization|bearer)(\s*[=:]\s*|\s+)([^\s,;&]+)"
)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or settings.log_level or "INFO").upper()
    if IS_PRODUCTION and name == "DEBUG":
        name = "INFO"
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """애플리케이션 로거 구성 (여러 번 호출해도 핸들러는 하나)"""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    log_level = _resolve_level(level)
    app_logger.setLevel(log_level)
    app_logger.propagate = False

    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            fmt=_PRODUCTION_FORMAT if IS_PRODUCTION else _DEVELOPMENT_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        app_logger.addHandler(handler)
    for handler in app_logger.handlers:
        handler.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    return app_logger


logger = setup_logging()


def sanitize_for_log(value: str, max_length: int = 100) -> str:
    """로그용 문자열 정리

    - 자격 증명 값은 *** 로 마스킹 (키 이름은 유지)
    - 줄바꿈 제거 (로그 위조 방지)
    - max_length 초과분은 잘라냄

    Args:
        value: 로깅할 문자열
        max_length: 최대 길이

    Returns:
        정리된 문자열
    """
    if not value:
        return "[empty]"

    result = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}***", value)
    result = result.replace("\r", " ").replace("\n", " ")

    if len(result) > max_length:
        result = result[:max_length] + "..."

    return result
