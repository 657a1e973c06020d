"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 데이터베이스
    database_url: str = "sqlite:///./market_sync.db"

    # Redis (비어 있으면 resolved price 캐시 비활성화)
    redis_url: str = ""
    resolved_cache_ttl: int = 900  # 15분

    # 스케줄러
    scheduler_batch_size: int = 20
    scheduler_concurrency: int = 5
    scheduler_max_retries: int = 3
    # 백오프: base * factor^(retry_count-1) 분 → 1분, 4분, 16분
    scheduler_backoff_base_minutes: float = 1.0
    scheduler_backoff_factor: float = 4.0
    scheduler_stale_running_timeout_s: int = 300
    scheduler_fetch_timeout_s: float = 30.0

    # 프로세스 내 주기 실행 (기본은 외부 cron이 /scheduler/run 호출)
    scheduler_enabled: bool = False
    scheduler_interval_minutes: int = 15

    # 프로바이더별 시간당 호출 한도
    provider_rate_limits: dict[str, int] = {
        "stockx": 100,
        "alias": 200,
        "ebay": 150,
    }

    # 프로바이더 어댑터 (HTTP 세부사항은 어댑터 책임)
    provider_base_urls: dict[str, str] = {}
    provider_tokens: dict[str, str] = {}

    # 티어별 재동기화 주기 (시간)
    tier_intervals_hours: dict[str, int] = {
        "hot": 1,
        "warm": 6,
        "cold": 24,
    }

    # 잡 우선순위
    priority_manual: int = 200
    priority_hot: int = 150
    priority_background: int = 100

    # 최신가 캐시가 이 시간보다 오래되면 stale
    market_staleness_hours: int = 24

    # 공유 시크릿 (비어 있으면 해당 엔드포인트 비활성화)
    scheduler_secret: str = ""
    webhook_secret: str = ""

    # 로컬에 없는 리스팅 처리 정책 (report_only만 지원)
    orphan_listing_policy: str = "report_only"

    # API
    api_title: str = "Market Sync Engine"
    api_version: str = "1.0.0"
    api_description: str = "Rate-limited market data synchronization for reseller inventory."

    # 로깅
    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v:
            raise ValueError("database_url must not be empty")
        return v

    @field_validator(
        "scheduler_batch_size",
        "scheduler_concurrency",
        "scheduler_stale_running_timeout_s",
        "scheduler_interval_minutes",
        "resolved_cache_ttl",
        "market_staleness_hours",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("scheduler_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("scheduler_max_retries must be >= 0")
        return v

    @field_validator("scheduler_fetch_timeout_s", "scheduler_backoff_base_minutes")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("provider_rate_limits")
    @classmethod
    def validate_rate_limits(cls, v: dict[str, int]) -> dict[str, int]:
        for provider, limit in v.items():
            if limit <= 0:
                raise ValueError(f"rate limit for {provider} must be positive")
        return {provider.lower(): limit for provider, limit in v.items()}

    @field_validator("tier_intervals_hours")
    @classmethod
    def validate_tier_intervals(cls, v: dict[str, int]) -> dict[str, int]:
        missing = {"hot", "warm", "cold"} - set(v)
        if missing:
            raise ValueError(f"tier_intervals_hours missing tiers: {sorted(missing)}")
        return v

    @field_validator("orphan_listing_policy")
    @classmethod
    def validate_orphan_policy(cls, v: str) -> str:
        if v != "report_only":
            raise ValueError("orphan_listing_policy only supports 'report_only'")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
