"""프로바이더 리스팅 / 웹훅 이벤트 리포지토리"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import ProviderListing, WebhookEvent
from src.utils.clock import utcnow


class ListingRepository:
    """리스팅 상태 데이터 액세스 레이어"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider: str, listing_id: str) -> Optional[ProviderListing]:
        return (
            self.db.query(ProviderListing)
            .filter(ProviderListing.provider == provider)
            .filter(ProviderListing.listing_id == listing_id)
            .first()
        )

    def create(self, provider: str, listing_id: str, status: Optional[str] = None,
               price: Optional[Decimal] = None, currency: Optional[str] = None) -> ProviderListing:
        """로컬 리스팅 등록 (인벤토리 쪽에서 리스팅 생성 시)"""
        try:
            listing = ProviderListing(
                provider=provider,
                listing_id=listing_id,
                status=status,
                price=price,
                currency=currency,
                orphaned=False,
            )
            self.db.add(listing)
            self.db.commit()
            self.db.refresh(listing)
            return listing
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"Failed to create listing: {e}")

    def apply_update(
        self,
        listing: ProviderListing,
        event_id: str,
        status: Optional[str] = None,
        price: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> ProviderListing:
        """웹훅 이벤트로 리스팅 상태/가격 갱신"""
        try:
            if status is not None:
                listing.status = status
            if price is not None:
                listing.price = price
            if currency is not None:
                listing.currency = currency
            listing.last_event_id = event_id
            listing.updated_at = utcnow()
            self.db.commit()
            return listing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update listing {listing.listing_id}: {e}")
            raise DatabaseException(f"Failed to update listing: {e}")

    def record_orphan(
        self,
        provider: str,
        listing_id: str,
        event_id: str,
        status: Optional[str] = None,
        price: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> ProviderListing:
        """로컬에 없는 리스팅을 검토 대상으로 기록 (자동 import 아님)"""
        try:
            listing = ProviderListing(
                provider=provider,
                listing_id=listing_id,
                status=status,
                price=price,
                currency=currency,
                orphaned=True,
                last_event_id=event_id,
            )
            self.db.add(listing)
            self.db.commit()
            self.db.refresh(listing)
            return listing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record orphan listing {listing_id}: {e}")
            raise DatabaseException(f"Failed to record orphan listing: {e}")

    def count_orphans(self, provider: Optional[str] = None) -> int:
        query = self.db.query(ProviderListing).filter(ProviderListing.orphaned.is_(True))
        if provider:
            query = query.filter(ProviderListing.provider == provider)
        return query.count()


class WebhookEventRepository:
    """웹훅 이벤트 멱등성 기록"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, event_id: str) -> bool:
        return self.db.query(WebhookEvent.id).filter(WebhookEvent.event_id == event_id).first() is not None

    def record(
        self,
        event_id: str,
        provider: str,
        event_type: str,
        outcome: str,
        event_created_at: Optional[datetime] = None,
    ) -> bool:
        """이벤트 기록

        Returns:
            새로 기록되었는지 여부 (이미 처리된 id면 False)
        """
        try:
            self.db.add(WebhookEvent(
                event_id=event_id,
                provider=provider,
                event_type=event_type,
                event_created_at=event_created_at,
                outcome=outcome,
            ))
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record webhook event {event_id}: {e}")
            raise DatabaseException(f"Failed to record webhook event: {e}")
