# backend/app/services/market_data/repository.py
"""
Stored series repository.

Reads and writes the price_history and onchain_metrics tables. The stored
history serves two purposes:
- Fallback source when a live provider is unavailable
- Write-back target after every successful live price fetch

Upserts use the dialect's native INSERT ... ON CONFLICT so repeated fetches
of overlapping windows never create duplicate (coin_id, price_date) rows.
"""

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.models import Coin, OnChainMetric, PriceHistory
from app.services.market_data.base import PricePoint

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float | None:
    return float(value) if value is not None else None


class StoredSeriesRepository:
    """Database access for stored price history and on-chain snapshots."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def has_coin(self, coin_id: str) -> bool:
        """Stored rows reference coins.id; unknown coins are never written."""
        return self._db.get(Coin, coin_id) is not None

    # =========================================================================
    # PRICE HISTORY
    # =========================================================================

    def get_price_history(self, coin_id: str, start: date, end: date) -> list[PricePoint]:
        """Stored daily prices in [start, end], ascending by date."""
        rows = self._db.execute(
            select(PriceHistory)
            .where(
                PriceHistory.coin_id == coin_id,
                PriceHistory.price_date >= start,
                PriceHistory.price_date <= end,
            )
            .order_by(PriceHistory.price_date)
        ).scalars().all()

        return [
            PricePoint(
                date=row.price_date,
                price=float(row.price_usd),
                volume=_to_float(row.volume_usd),
                market_cap=_to_float(row.market_cap),
            )
            for row in rows
            if row.price_usd is not None and row.price_usd > 0
        ]

    def save_price_history(self, coin_id: str, points: list[PricePoint], source: str) -> int:
        """
        Upsert prices by (coin_id, price_date).

        Returns:
            Number of rows written
        """
        if not points:
            return 0
        if not self.has_coin(coin_id):
            logger.debug(f"Skipping price write-back for unknown coin {coin_id}")
            return 0

        records = [
            {
                "coin_id": coin_id,
                "price_date": p.date,
                "price_usd": p.price,
                "volume_usd": p.volume,
                "market_cap": p.market_cap,
                "data_source": source,
            }
            for p in points
        ]

        insert = pg_insert if self._db.get_bind().dialect.name == "postgresql" else sqlite_insert

        try:
            stmt = insert(PriceHistory).values(records)
            upsert_stmt = stmt.on_conflict_do_update(
                index_elements=["coin_id", "price_date"],
                set_={
                    "price_usd": stmt.excluded.price_usd,
                    "volume_usd": stmt.excluded.volume_usd,
                    "market_cap": stmt.excluded.market_cap,
                    "data_source": stmt.excluded.data_source,
                },
            )
            self._db.execute(upsert_stmt)
            self._db.commit()
        except Exception as e:
            logger.error(f"Error storing price history for {coin_id}: {e}")
            self._db.rollback()
            raise

        logger.info(f"Stored {len(records)} prices for {coin_id} (source={source})")
        return len(records)

    # =========================================================================
    # ON-CHAIN SNAPSHOTS
    # =========================================================================

    def save_onchain_snapshot(self, coin_id: str, metrics: dict[str, Any], source: str) -> None:
        """Append a snapshot row; earlier snapshots are kept."""
        if not self.has_coin(coin_id):
            logger.debug(f"Skipping on-chain snapshot for unknown coin {coin_id}")
            return
        self._db.add(OnChainMetric(coin_id=coin_id, metrics=metrics, data_source=source))
        self._db.commit()
        logger.debug(f"Stored on-chain snapshot for {coin_id}: {sorted(metrics)}")

    def get_latest_onchain_snapshot(self, coin_id: str) -> dict[str, Any] | None:
        row = self._db.execute(
            select(OnChainMetric)
            .where(OnChainMetric.coin_id == coin_id)
            .order_by(OnChainMetric.recorded_at.desc(), OnChainMetric.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return dict(row.metrics) if row is not None else None
