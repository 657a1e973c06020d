"""웹훅 처리 서비스 - 동기화 엔진과 별개로 리스팅 상태 갱신

처리 이벤트:
- listing.status.changed: 리스팅 상태 갱신
- listing.price.changed:  리스팅 가격 갱신 (cents → major unit)
- order.* / payout.created: 기록만
- 그 외: ignored로 기록

필수 데이터가 없거나 잘못된 리스팅 이벤트는 rejected로 기록합니다 (재전송 방지).

로컬에 없는 리스팅은 orphaned로 기록만 하고 자동 import 하지 않습니다.
"""
from typing import Optional

from sqlalchemy.orm import Session

from src.core.exceptions import ValidationException
from src.core.logging import logger
from src.repositories.impl.listing_repository import ListingRepository, WebhookEventRepository
from src.schemas.market_schema import WebhookAckResponse, WebhookEvent
from src.utils.prices import PriceFormatError, parse_minor_units

LISTING_STATUS_CHANGED = "listing.status.changed"
LISTING_PRICE_CHANGED = "listing.price.changed"
PAYOUT_CREATED = "payout.created"
ORDER_PREFIX = "order."


class WebhookService:
    """프로바이더 웹훅 이벤트 처리 (event id 기준 멱등)"""

    def __init__(self, db: Session, provider: str = "alias", orphan_policy: str = "report_only"):
        self.provider = provider
        self.orphan_policy = orphan_policy
        self.listings = ListingRepository(db)
        self.events = WebhookEventRepository(db)

    def handle(self, event: WebhookEvent) -> WebhookAckResponse:
        """이벤트 처리 (event id당 한 번 기록)"""
        if self.events.exists(event.id):
            logger.info(f"[Webhook] Duplicate event {event.id} ({event.type}) ignored")
            return WebhookAckResponse(duplicate=True, outcome="duplicate")

        if event.type in (LISTING_STATUS_CHANGED, LISTING_PRICE_CHANGED):
            try:
                outcome = self._handle_listing_event(event)
            except ValidationException as e:
                # 기록된 id의 재전송은 duplicate로 응답됨
                logger.warning(f"[Webhook] Event {event.id} ({event.type}) rejected: {e.message}")
                outcome = "rejected"
        elif event.type.startswith(ORDER_PREFIX) or event.type == PAYOUT_CREATED:
            outcome = "recorded"
        else:
            outcome = "ignored"

        recorded = self.events.record(
            event_id=event.id,
            provider=self.provider,
            event_type=event.type,
            outcome=outcome,
            event_created_at=event.created_at,
        )
        if not recorded:
            return WebhookAckResponse(duplicate=True, outcome="duplicate")

        logger.info(f"[Webhook] Event {event.id} ({event.type}) → {outcome}")
        return WebhookAckResponse(duplicate=False, outcome=outcome)

    def _handle_listing_event(self, event: WebhookEvent) -> str:
        """
        Raises:
            ValidationException: 리스팅 이벤트에 필수 데이터가 없거나 형식이 잘못된 경우
        """
        if event.type == LISTING_STATUS_CHANGED:
            status = event.data.get("status")
            if not status:
                raise ValidationException("data.status", "required for listing.status.changed")
            return self._apply_listing(event, status=str(status))

        try:
            price = parse_minor_units(event.data.get("price_cents"))
        except PriceFormatError as e:
            raise ValidationException("data.price_cents", str(e)) from e
        if price is None:
            raise ValidationException("data.price_cents", "must be a positive integer cents string")
        currency = str(event.data.get("currency") or "USD").upper()
        return self._apply_listing(event, price=price, currency=currency)

    def _apply_listing(self, event: WebhookEvent, status: Optional[str] = None,
                       price=None, currency: Optional[str] = None) -> str:
        listing_id = event.data.get("listing_id") or event.data.get("id")
        if not listing_id:
            raise ValidationException("data.listing_id", f"required for {event.type}")
        listing_id = str(listing_id)

        listing = self.listings.get(self.provider, listing_id)
        if listing is not None and not listing.orphaned:
            self.listings.apply_update(listing, event.id, status=status, price=price, currency=currency)
            return "processed"

        # report_only: 검토 대상으로 기록만 함
        if listing is None:
            self.listings.record_orphan(
                self.provider, listing_id, event.id, status=status, price=price, currency=currency
            )
        else:
            self.listings.apply_update(listing, event.id, status=status, price=price, currency=currency)
        logger.warning(f"[Webhook] Orphaned {self.provider} listing {listing_id} recorded for review")
        return "orphaned"
