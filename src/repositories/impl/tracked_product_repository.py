"""추적 상품 리포지토리 - 티어 및 마지막 동기화 시각"""
from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.database import dialect_insert
from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import TrackedProduct, canonical_provider


class TrackedProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_all(self) -> List[TrackedProduct]:
        """전체 추적 대상"""
        try:
            return self.db.query(TrackedProduct).order_by(TrackedProduct.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load tracked products: {e}")
            raise DatabaseException(f"Failed to load tracked products: {e}")

    def track(self, provider: str, item_key: str, size: str = "", tier: str = "cold") -> None:
        """추적 대상 등록 (이미 있으면 tier만 갱신)"""
        provider = canonical_provider(provider)
        try:
            stmt = dialect_insert(self.db, TrackedProduct).values(
                provider=provider, item_key=item_key, size=size, tier=tier
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["provider", "item_key", "size"],
                set_={"tier": stmt.excluded.tier},
            )
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to track {provider}:{item_key}:{size}: {e}")
            raise DatabaseException(f"Failed to track product: {e}")

    def mark_synced(self, provider: str, item_key: str, size: str, synced_at: datetime) -> bool:
        """잡 성공/스킵 후 마지막 동기화 시각 갱신

        Returns:
            추적 대상이었는지 여부
        """
        provider = canonical_provider(provider)
        try:
            updated = (
                self.db.query(TrackedProduct)
                .filter(TrackedProduct.provider == provider)
                .filter(TrackedProduct.item_key == item_key)
                .filter(TrackedProduct.size == size)
                .update({TrackedProduct.last_synced_at: synced_at}, synchronize_session=False)
            )
            self.db.commit()
            return updated > 0
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to mark {provider}:{item_key}:{size} synced: {e}")
            raise DatabaseException(f"Failed to mark product synced: {e}")
