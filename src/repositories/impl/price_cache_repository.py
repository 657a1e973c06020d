"""가격 캐시 리포지토리 - 최신가 캐시 + append-only 가격 이력"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.database import dialect_insert
from src.core.exceptions import DatabaseException
from src.core.logging import logger
from src.repositories.models import MarketLatestPrice, MarketPriceHistory
from src.schemas.market_schema import MarketSnapshot
from src.utils.clock import utcnow
from src.utils.hash_utils import hash_string


def history_fingerprint(snapshot: MarketSnapshot) -> str:
    """이력 자연키 (item_key, currency, 가격 튜플, as_of) 해시"""
    parts = [
        snapshot.item_key,
        snapshot.currency,
        str(snapshot.lowest_ask),
        str(snapshot.highest_bid),
        str(snapshot.last_sale),
        snapshot.as_of.isoformat(),
    ]
    return hash_string("|".join(parts))


def _snapshot_values(snapshot: MarketSnapshot) -> dict:
    return {
        "item_key": snapshot.item_key,
        "currency": snapshot.currency,
        "provider": snapshot.provider,
        "sku": snapshot.sku,
        "size": snapshot.size,
        "lowest_ask": snapshot.lowest_ask,
        "highest_bid": snapshot.highest_bid,
        "last_sale": snapshot.last_sale,
        "as_of": snapshot.as_of,
    }


class PriceCacheRepository:
    def __init__(self, db: Session):
        self.db = db

    def upsert_latest(self, snapshot: MarketSnapshot) -> bool:
        """(item_key, currency) 최신가 upsert

        저장된 as_of보다 오래된 스냅샷은 덮어쓰지 않습니다.

        Returns:
            행이 삽입/갱신되었는지 여부
        """
        try:
            values = _snapshot_values(snapshot)
            values["updated_at"] = utcnow()
            stmt = dialect_insert(self.db, MarketLatestPrice).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["item_key", "currency"],
                set_={
                    "provider": stmt.excluded.provider,
                    "sku": stmt.excluded.sku,
                    "size": stmt.excluded.size,
                    "lowest_ask": stmt.excluded.lowest_ask,
                    "highest_bid": stmt.excluded.highest_bid,
                    "last_sale": stmt.excluded.last_sale,
                    "as_of": stmt.excluded.as_of,
                    "updated_at": stmt.excluded.updated_at,
                },
                where=MarketLatestPrice.as_of <= stmt.excluded.as_of,
            )
            result = self.db.execute(stmt)
            self.db.commit()
            written = result.rowcount > 0
            if not written:
                logger.debug(f"Stale snapshot ignored: {snapshot.item_key} as_of={snapshot.as_of}")
            return written
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Latest price write error: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to upsert latest price: {e}")

    def append_history(self, snapshot: MarketSnapshot) -> bool:
        """이력 행 추가 (같은 자연키가 있으면 no-op)

        Returns:
            새 행 삽입 여부
        """
        try:
            values = _snapshot_values(snapshot)
            values["fingerprint"] = history_fingerprint(snapshot)
            values["recorded_at"] = utcnow()
            stmt = (
                dialect_insert(self.db, MarketPriceHistory)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["fingerprint"])
            )
            result = self.db.execute(stmt)
            self.db.commit()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Price history write error: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to append price history: {e}")

    def get_latest(self, item_key: str, currency: str) -> Optional[MarketLatestPrice]:
        """item_key의 최신가 행"""
        return (
            self.db.query(MarketLatestPrice)
            .filter(MarketLatestPrice.item_key == item_key)
            .filter(MarketLatestPrice.currency == currency.upper())
            .first()
        )

    def get_latest_for_item(self, sku: str, size: str, currency: str) -> List[MarketLatestPrice]:
        """논리 아이템 (sku, size, currency)의 프로바이더별 최신가 행"""
        return (
            self.db.query(MarketLatestPrice)
            .filter(MarketLatestPrice.sku == sku)
            .filter(MarketLatestPrice.size == size)
            .filter(MarketLatestPrice.currency == currency.upper())
            .all()
        )

    def get_history(self, item_key: str, currency: str, limit: int = 100) -> List[MarketPriceHistory]:
        """이력 조회 (최신순)"""
        return (
            self.db.query(MarketPriceHistory)
            .filter(MarketPriceHistory.item_key == item_key)
            .filter(MarketPriceHistory.currency == currency.upper())
            .order_by(MarketPriceHistory.as_of.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def is_stale(as_of: datetime, staleness_hours: int, now: Optional[datetime] = None) -> bool:
        """as_of가 staleness 기준보다 오래되었는지 여부

        캐시는 행을 만료시키지 않으며, 판단은 호출자가 합니다.
        """
        now = now or utcnow()
        return now - as_of > timedelta(hours=staleness_hours)

    @staticmethod
    def to_snapshot(row: MarketLatestPrice) -> MarketSnapshot:
        """DB 행 → MarketSnapshot"""
        return MarketSnapshot(
            item_key=row.item_key,
            currency=row.currency,
            provider=row.provider,
            sku=row.sku,
            size=row.size,
            lowest_ask=row.lowest_ask,
            highest_bid=row.highest_bid,
            last_sale=row.last_sale,
            as_of=row.as_of,
        )
