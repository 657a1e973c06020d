"""마켓 가격 조회 엔드포인트"""
from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import get_market_price_service
from src.schemas.market_schema import ResolvedPriceResponse
from src.services.impl.market_price_service import MarketPriceService

router = APIRouter(prefix="/market", tags=["market"])


@router.get("/prices/{sku}/{size}", response_model=ResolvedPriceResponse)
async def get_market_price(
    sku: str,
    size: str,
    currency: str = Query("USD", min_length=3, max_length=3, pattern="^[A-Za-z]{3}$"),
    service: MarketPriceService = Depends(get_market_price_service),
) -> ResolvedPriceResponse:
    """
    논리 아이템 (sku, size, currency)의 대표 가격

    - market_price: highest_bid → lowest_ask 순 fallback
    - is_stale: as_of가 market_staleness_hours보다 오래되었으면 True
    """
    resolved = service.get_resolved(sku.strip(), size.strip(), currency)
    if resolved is None:
        raise HTTPException(status_code=404, detail="No market data for item")
    return resolved
