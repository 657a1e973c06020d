"""Pydantic 스키마 정의 (Market Snapshot & Scheduler API)"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.clock import parse_timestamp
from src.utils.prices import market_price


class MarketSnapshot(BaseModel):
    """정규화된 프로바이더 가격 스냅샷

    모든 금액은 통화의 major unit (150.00 == £150.00) 입니다.
    """
    model_config = ConfigDict(frozen=True)

    item_key: str = Field(..., min_length=1, max_length=255, description="표준 아이템 키")
    currency: str = Field(..., min_length=3, max_length=3, description="ISO 4217 통화 코드")
    provider: str = Field(..., min_length=1, max_length=20, description="프로바이더")
    sku: Optional[str] = Field(None, max_length=100, description="스타일 코드")
    size: Optional[str] = Field(None, max_length=20, description="사이즈")
    lowest_ask: Optional[Decimal] = Field(None, gt=0, description="최저 판매 호가")
    highest_bid: Optional[Decimal] = Field(None, gt=0, description="최고 구매 호가")
    last_sale: Optional[Decimal] = Field(None, gt=0, description="최근 체결가")
    as_of: datetime = Field(..., description="업스트림 기준 시각 (naive UTC)")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if not v.isalpha():
            raise ValueError("currency must be an alphabetic ISO code")
        return v

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("as_of", mode="before")
    @classmethod
    def validate_as_of(cls, v: Any) -> datetime:
        parsed = parse_timestamp(v)
        if parsed is None:
            raise ValueError("as_of must be a valid timestamp")
        return parsed

    @property
    def has_price(self) -> bool:
        return any(p is not None for p in (self.lowest_ask, self.highest_bid, self.last_sale))

    @property
    def market_price(self) -> Optional[Decimal]:
        return market_price(self)


class SchedulerRunRequest(BaseModel):
    """스케줄러 실행 요청 (바디 생략 가능)"""
    model_config = ConfigDict(populate_by_name=True)

    batch_size: Optional[int] = Field(None, alias="batchSize", ge=1, le=500, description="배치 크기")
    dry_run: bool = Field(False, alias="dryRun", description="선택만 하고 디스패치하지 않음")


class SchedulerRunResponse(BaseModel):
    """스케줄러 실행 결과"""
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(..., alias="runId")
    synced: int = Field(..., ge=0, description="성공한 잡 수")
    errors: int = Field(..., ge=0, description="실패한 잡 수")
    deferred: int = Field(0, ge=0, description="한도 초과로 연기된 잡 수")
    skipped: int = Field(0, ge=0, description="NotFound로 스킵된 잡 수")
    total_variants: int = Field(..., alias="totalVariants", ge=0, description="선택된 잡 수")
    duration_ms: int = Field(..., alias="durationMs", ge=0)
    dry_run: bool = Field(False, alias="dryRun")


class JobResetResponse(BaseModel):
    """실패 잡 리셋 결과"""
    reset: int = Field(..., ge=0, description="pending으로 되돌린 잡 수")


class EnqueueJobRequest(BaseModel):
    """온디맨드 동기화 요청"""
    provider: str = Field(..., min_length=1, max_length=20)
    item_key: str = Field(..., min_length=1, max_length=100, alias="itemKey")
    size: str = Field("", max_length=20)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        from src.engine.providers import parse_provider

        provider = parse_provider(v)
        if provider is None:
            raise ValueError(f"unknown provider: {v}")
        return provider.value

    @field_validator("item_key", "size")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return v.strip()


class EnqueueJobResponse(BaseModel):
    """온디맨드 동기화 응답"""
    created: bool = Field(..., description="새 잡 생성 여부 (활성 잡이 있으면 False)")
    priority: int


class JobRunRecord(BaseModel):
    """스케줄러 실행 기록"""
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    status: str
    dry_run: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    jobs_selected: int
    jobs_succeeded: int
    jobs_failed: int
    jobs_deferred: int
    jobs_skipped: int
    jobs_reclaimed: int
    error_message: Optional[str] = None


class JobRunListResponse(BaseModel):
    runs: List[JobRunRecord]


class ResolvedPriceResponse(BaseModel):
    """논리 아이템의 대표 가격"""
    sku: str
    size: str
    currency: str
    provider: str
    item_key: str
    lowest_ask: Optional[Decimal] = None
    highest_bid: Optional[Decimal] = None
    last_sale: Optional[Decimal] = None
    market_price: Optional[Decimal] = Field(None, description="highest_bid → lowest_ask 순 fallback")
    as_of: datetime
    is_stale: bool = Field(..., description="as_of가 staleness 기준보다 오래되었는지 여부")
    source: str = Field("db", description="db | cache")


class WebhookAckResponse(BaseModel):
    """웹훅 수신 응답"""
    received: bool = True
    duplicate: bool = False
    outcome: str


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    timestamp: datetime
    version: str


class WebhookEvent(BaseModel):
    """수신 웹훅 이벤트 {id, type, created_at, data}"""
    id: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=50)
    created_at: Optional[datetime] = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at", mode="before")
    @classmethod
    def validate_created_at(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)
