"""가격 파싱 및 market price 결정

시스템의 표준 단위는 통화의 major unit입니다 (150.00 == £150.00).
프로바이더마다 인코딩이 다르므로 변환은 반드시 이 모듈을 거칩니다.
- cents 문자열 ("14500")  → parse_minor_units → Decimal("145.00")
- major 문자열 ("145.00") → parse_major_units → Decimal("145.00")

값이 없음(None, 빈 문자열, 0)은 None, 값이 있는데 해석할 수 없으면 PriceFormatError.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Protocol

TWO_PLACES = Decimal("0.01")


class PriceFormatError(ValueError):
    """금액 필드가 존재하지만 형식이 잘못됨 (비숫자, 음수, 소수 cents 등)"""


class PricedSnapshot(Protocol):
    lowest_ask: Optional[Decimal]
    highest_bid: Optional[Decimal]


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise PriceFormatError(f"not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise PriceFormatError(f"not a number: {value!r}") from e
    if not parsed.is_finite():
        raise PriceFormatError(f"not a finite amount: {value!r}")
    if parsed < 0:
        raise PriceFormatError(f"negative amount: {value!r}")
    return parsed


def parse_major_units(value: Any) -> Optional[Decimal]:
    """major unit 금액 ("145.00", 145, 145.5) → Decimal

    Returns:
        소수 둘째 자리로 반올림한 금액. 없음/0 이면 None.

    Raises:
        PriceFormatError: 해석할 수 없는 값
    """
    parsed = _to_decimal(value)
    if not parsed:
        return None
    amount = parsed.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if not amount:
        raise PriceFormatError(f"rounds to zero: {value!r}")
    return amount


def parse_minor_units(value: Any) -> Optional[Decimal]:
    """minor unit(cents) 금액 ("14500", 14500) → major unit Decimal

    Raises:
        PriceFormatError: 해석할 수 없는 값 또는 소수점이 포함된 cents
    """
    parsed = _to_decimal(value)
    if not parsed:
        return None
    if parsed != parsed.to_integral_value():
        raise PriceFormatError(f"fractional cents: {value!r}")
    return (parsed / 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def market_price(snapshot: PricedSnapshot) -> Optional[Decimal]:
    """표준 market price fallback 체인: highest_bid → lowest_ask → None

    last_sale은 이 체인에 포함되지 않습니다.
    """
    if snapshot.highest_bid is not None:
        return snapshot.highest_bid
    if snapshot.lowest_ask is not None:
        return snapshot.lowest_ask
    return None
