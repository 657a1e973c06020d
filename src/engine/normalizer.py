"""Normalizer - 프로바이더 원본 페이로드 → MarketSnapshot

프로바이더별 인코딩 차이:
- StockX: major unit 문자열/숫자 ("145.00"), 안정적인 variantId 제공
- Alias:  cents 문자열 ("14500"), variant id 없음 → 복합 키, 항상 USD
- eBay:   {"value": "145.00", "currency": "GBP"} major unit, 판매완료/판매중 구분
- seed:   표준 스냅샷 형태 (major unit)

필수 필드(size, 가격 1개 이상, timestamp)가 없으면 NormalizationError를 발생시킵니다.
0/None 가격으로 조용히 대체하지 않습니다.
"""

from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from src.engine.exceptions import NormalizationError
from src.engine.providers import Provider, parse_provider
from src.schemas.market_schema import MarketSnapshot
from src.utils.clock import parse_timestamp
from src.utils.hash_utils import payload_fingerprint
from src.utils.prices import PriceFormatError, parse_major_units, parse_minor_units

# Alias region_id는 마켓플레이스를 나타내며 통화가 아닙니다 (가격은 항상 USD cents)
ALIAS_REGIONS = {
    "1": "US",
    "2": "EU",
    "3": "UK",
}
ALIAS_CURRENCY = "USD"
GLOBAL_REGION = "global"

_CONDITION_PREFIXES = ("PRODUCT_CONDITION_", "PACKAGING_CONDITION_")


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _size_text(value: Any) -> Optional[str]:
    """사이즈 표기 통일 (10.0 → "10", 10.5 → "10.5")"""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _text(value)


def _condition(value: Any, default: str) -> str:
    text = _text(value)
    if text is None:
        return default
    for prefix in _CONDITION_PREFIXES:
        if text.upper().startswith(prefix):
            text = text[len(prefix):]
    return text.lower()


def composite_item_key(
    provider: str,
    catalog_id: str,
    size: str,
    condition: str = "new",
    packaging_condition: str = "good_condition",
    consigned: bool = False,
    region: str = GLOBAL_REGION,
) -> str:
    """variant id가 없는 프로바이더용 복합 item key

    (catalog_id, size, condition, packaging_condition, consigned, region)
    """
    consignment = "consigned" if consigned else "standard"
    return ":".join([
        provider,
        catalog_id,
        size,
        condition,
        packaging_condition,
        consignment,
        region,
    ])


def alias_region(region_id: Any) -> str:
    """Alias region_id → 지역 코드 (미등록은 global)"""
    text = _text(region_id)
    if text is None:
        return GLOBAL_REGION
    return ALIAS_REGIONS.get(text, GLOBAL_REGION)


class Normalizer:
    """프로바이더별 정규화 디스패처

    Usage:
        normalizer = Normalizer()
        snapshot = normalizer.normalize("alias", payload, sku="DD1391-100", size="10")
    """

    def __init__(self) -> None:
        self._handlers: dict[Provider, Callable[..., MarketSnapshot]] = {
            Provider.STOCKX: self._normalize_stockx,
            Provider.ALIAS: self._normalize_alias,
            Provider.EBAY: self._normalize_ebay,
            Provider.SEED: self._normalize_seed,
        }

    def normalize(
        self,
        provider: str,
        payload: Any,
        sku: Optional[str] = None,
        size: Optional[str] = None,
    ) -> MarketSnapshot:
        """원본 페이로드 정규화

        Args:
            provider: 프로바이더 이름
            payload: 어댑터가 반환한 원본 페이로드 (dict 또는 variant 목록)
            sku: 스타일 코드 (페이로드에 없을 때 사용)
            size: 요청한 사이즈 (variant 목록에서 선택할 때 사용)

        Returns:
            MarketSnapshot

        Raises:
            NormalizationError: 계약 위반 페이로드
        """
        fingerprint = payload_fingerprint(payload)
        parsed = parse_provider(provider)
        handler = self._handlers.get(parsed) if parsed else None
        if handler is None:
            raise NormalizationError(
                f"no normalizer for provider '{provider}'",
                provider=provider,
                fingerprint=fingerprint,
            )

        try:
            return handler(payload, sku=sku, size=size)
        except NormalizationError as e:
            e.provider = e.provider or parsed.value
            e.fingerprint = e.fingerprint or fingerprint
            raise
        except ValidationError as e:
            raise NormalizationError(
                f"snapshot validation failed: {e.error_count()} error(s)",
                provider=parsed.value,
                fingerprint=fingerprint,
            ) from e

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _select(payload: Any, size: Optional[str], size_fields: tuple[str, ...], list_key: str) -> Mapping:
        """단일 페이로드 또는 variant 목록에서 요청 사이즈 항목 선택"""
        if isinstance(payload, Mapping) and isinstance(payload.get(list_key), list):
            payload = payload[list_key]

        if isinstance(payload, Mapping):
            return payload

        if not isinstance(payload, list):
            raise NormalizationError("payload must be an object or a list of variants")

        wanted = _size_text(size)
        if not wanted:
            if len(payload) == 1 and isinstance(payload[0], Mapping):
                return payload[0]
            raise NormalizationError("size is required to select a variant")

        for entry in payload:
            if not isinstance(entry, Mapping):
                continue
            for field in size_fields:
                if _size_text(entry.get(field)) == wanted:
                    return entry
        raise NormalizationError(f"no variant for size {wanted}")

    @staticmethod
    def _require_size(value: Any) -> str:
        size = _size_text(value)
        if size is None:
            raise NormalizationError("missing required field: size")
        return size

    @staticmethod
    def _require_timestamp(*candidates: Any):
        for candidate in candidates:
            parsed = parse_timestamp(candidate)
            if parsed is not None:
                return parsed
        raise NormalizationError("missing required field: timestamp")

    @staticmethod
    def _price(
        parser: Callable[[Any], Optional[Decimal]],
        container: Mapping,
        field: str,
        label: Optional[str] = None,
    ) -> Optional[Decimal]:
        """금액 필드 파싱. 없음/0은 None, 형식 오류는 필드명과 함께 NormalizationError"""
        try:
            return parser(container.get(field))
        except PriceFormatError as e:
            raise NormalizationError(f"malformed price field {label or field}: {e}") from e

    @staticmethod
    def _require_price(*prices: Optional[Decimal]) -> None:
        if all(p is None for p in prices):
            raise NormalizationError("missing required field: price")

    # ------------------------------------------------------------------
    # providers
    # ------------------------------------------------------------------

    def _normalize_stockx(self, payload: Any, sku: Optional[str], size: Optional[str]) -> MarketSnapshot:
        variant = self._select(payload, size, ("size", "variantValue"), "variants")

        variant_size = self._require_size(variant.get("size") or variant.get("variantValue") or size)
        lowest_ask = self._price(parse_major_units, variant, "lowestAskAmount")
        highest_bid = self._price(parse_major_units, variant, "highestBidAmount")
        last_sale = self._price(parse_major_units, variant, "lastSaleAmount")
        self._require_price(lowest_ask, highest_bid, last_sale)

        currency = _text(variant.get("currencyCode")) or _text(_get(payload, "currencyCode"))
        if currency is None:
            raise NormalizationError("missing required field: currencyCode")

        as_of = self._require_timestamp(
            variant.get("snapshotAt"), variant.get("updatedAt"), _get(payload, "snapshotAt")
        )
        style = _text(variant.get("styleId")) or _text(_get(payload, "styleId")) or sku

        variant_id = _text(variant.get("variantId"))
        if variant_id:
            item_key = f"{Provider.STOCKX.value}:{variant_id}"
        else:
            product_id = _text(variant.get("productId")) or _text(_get(payload, "productId")) or style
            if product_id is None:
                raise NormalizationError("missing required field: variantId")
            item_key = composite_item_key(Provider.STOCKX.value, product_id, variant_size)

        return MarketSnapshot(
            item_key=item_key,
            currency=currency,
            provider=Provider.STOCKX.value,
            sku=style,
            size=variant_size,
            lowest_ask=lowest_ask,
            highest_bid=highest_bid,
            last_sale=last_sale,
            as_of=as_of,
        )

    def _normalize_alias(self, payload: Any, sku: Optional[str], size: Optional[str]) -> MarketSnapshot:
        variant = self._select(payload, size, ("size",), "variants")

        variant_size = self._require_size(variant.get("size"))
        availability = variant.get("availability") or {}
        if not isinstance(availability, Mapping):
            raise NormalizationError("availability must be an object")

        # cents 문자열 → major unit
        lowest_ask = self._price(parse_minor_units, availability, "lowest_listing_price_cents")
        highest_bid = self._price(parse_minor_units, availability, "highest_offer_price_cents")
        last_sale = self._price(parse_minor_units, availability, "last_sold_listing_price_cents")
        self._require_price(lowest_ask, highest_bid, last_sale)

        catalog_id = _text(variant.get("catalog_id")) or _text(_get(payload, "catalog_id"))
        if catalog_id is None:
            raise NormalizationError("missing required field: catalog_id")

        as_of = self._require_timestamp(
            variant.get("snapshot_at"), variant.get("updated_at"), _get(payload, "snapshot_at")
        )
        region_id = variant.get("region_id", _get(payload, "region_id"))

        item_key = composite_item_key(
            Provider.ALIAS.value,
            catalog_id,
            variant_size,
            condition=_condition(variant.get("product_condition"), "new"),
            packaging_condition=_condition(variant.get("packaging_condition"), "good_condition"),
            consigned=bool(variant.get("consigned", False)),
            region=alias_region(region_id),
        )

        return MarketSnapshot(
            item_key=item_key,
            currency=ALIAS_CURRENCY,
            provider=Provider.ALIAS.value,
            sku=_text(variant.get("sku")) or _text(_get(payload, "sku")) or sku,
            size=variant_size,
            lowest_ask=lowest_ask,
            highest_bid=highest_bid,
            last_sale=last_sale,
            as_of=as_of,
        )

    def _normalize_ebay(self, payload: Any, sku: Optional[str], size: Optional[str]) -> MarketSnapshot:
        items = payload.get("items") if isinstance(payload, Mapping) else payload
        if isinstance(items, list):
            item = self._lowest_priced(items, size)
        elif isinstance(payload, Mapping):
            item = payload
        else:
            raise NormalizationError("payload must be an object or a list of items")

        item_size = self._require_size(item.get("size") or size)
        price_obj = item.get("price")
        if not isinstance(price_obj, Mapping):
            raise NormalizationError("missing required field: price")

        price = self._price(parse_major_units, price_obj, "value", "price.value")
        self._require_price(price)
        currency = _text(price_obj.get("currency"))
        if currency is None:
            raise NormalizationError("missing required field: price.currency")

        sold = bool(item.get("sold", False))
        if sold:
            as_of = self._require_timestamp(item.get("soldAt"), item.get("itemEndDate"))
        else:
            as_of = self._require_timestamp(item.get("observedAt"), item.get("itemCreationDate"))

        style = _text(item.get("sku")) or sku
        if style is None:
            raise NormalizationError("missing required field: sku")

        item_key = composite_item_key(
            Provider.EBAY.value,
            style,
            item_size,
            condition=_condition(item.get("condition"), "new"),
            region=_text(item.get("marketplaceId")) or GLOBAL_REGION,
        )

        # 판매완료는 체결가, 판매중은 호가
        return MarketSnapshot(
            item_key=item_key,
            currency=currency,
            provider=Provider.EBAY.value,
            sku=style,
            size=item_size,
            lowest_ask=None if sold else price,
            highest_bid=None,
            last_sale=price if sold else None,
            as_of=as_of,
        )

    @staticmethod
    def _lowest_priced(items: list, size: Optional[str]) -> Mapping:
        """같은 (sku, size) 리스팅이 여러 개면 최저가 항목"""
        wanted = _size_text(size)
        best: Optional[Mapping] = None
        best_price: Optional[Decimal] = None
        for item in items:
            if not isinstance(item, Mapping):
                continue
            if wanted and _size_text(item.get("size")) not in (None, wanted):
                continue
            price_obj = item.get("price")
            price = (
                Normalizer._price(parse_major_units, price_obj, "value", "price.value")
                if isinstance(price_obj, Mapping) else None
            )
            if price is None:
                continue
            if best_price is None or price < best_price:
                best, best_price = item, price
        if best is None:
            raise NormalizationError("no priced listing in payload")
        return best

    def _normalize_seed(self, payload: Any, sku: Optional[str], size: Optional[str]) -> MarketSnapshot:
        if not isinstance(payload, Mapping):
            raise NormalizationError("payload must be an object")

        item_size = self._require_size(payload.get("size") or size)
        lowest_ask = self._price(parse_major_units, payload, "lowest_ask")
        highest_bid = self._price(parse_major_units, payload, "highest_bid")
        last_sale = self._price(parse_major_units, payload, "last_sale")
        self._require_price(lowest_ask, highest_bid, last_sale)
        as_of = self._require_timestamp(payload.get("as_of"))

        style = _text(payload.get("sku")) or sku
        item_key = _text(payload.get("item_key"))
        if item_key is None:
            if style is None:
                raise NormalizationError("missing required field: item_key")
            item_key = composite_item_key(Provider.SEED.value, style, item_size)

        return MarketSnapshot(
            item_key=item_key,
            currency=_text(payload.get("currency")) or "USD",
            provider=Provider.SEED.value,
            sku=style,
            size=item_size,
            lowest_ask=lowest_ask,
            highest_bid=highest_bid,
            last_sale=last_sale,
            as_of=as_of,
        )


def _get(payload: Any, key: str) -> Any:
    if isinstance(payload, Mapping):
        return payload.get(key)
    return None

