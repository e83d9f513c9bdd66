# backend/scripts/seed_coins.py
"""
Seed the coins catalog.

Inserts the supported coins with their basket and the static statistics
used by the fallback analysis path. Existing rows are updated in place, so
the script is safe to run repeatedly.

Usage:
    cd backend
    python init_db.py
    python -m scripts.seed_coins
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.models import Basket, Coin
from app.utils import setup_logging

logger = logging.getLogger(__name__)

# Static statistics are decimals (0.476 = 47.6%)
COIN_CATALOG: list[dict] = [
    {
        "id": "bitcoin", "symbol": "BTC", "name": "Bitcoin", "basket": Basket.BITCOIN,
        "cagr_36m": Decimal("0.476"), "beta": Decimal("0.4"), "volatility": Decimal("0.50"),
    },
    {
        "id": "ethereum", "symbol": "ETH", "name": "Ethereum", "basket": Basket.BLUE_CHIP,
        "cagr_36m": Decimal("0.50"), "beta": Decimal("1.1"), "volatility": Decimal("0.70"),
    },
    {
        "id": "solana", "symbol": "SOL", "name": "Solana", "basket": Basket.SMALL_CAP,
        "cagr_36m": Decimal("0.45"), "beta": Decimal("1.5"), "volatility": Decimal("0.75"),
    },
    {
        "id": "cardano", "symbol": "ADA", "name": "Cardano", "basket": Basket.SMALL_CAP,
        "cagr_36m": Decimal("0.25"), "beta": Decimal("1.3"), "volatility": Decimal("0.80"),
    },
    {
        "id": "chainlink", "symbol": "LINK", "name": "Chainlink", "basket": Basket.SMALL_CAP,
        "cagr_36m": None, "beta": Decimal("1.4"), "volatility": None,
    },
    {
        "id": "avalanche-2", "symbol": "AVAX", "name": "Avalanche", "basket": Basket.SMALL_CAP,
        "cagr_36m": None, "beta": None, "volatility": None,
    },
]


def seed_coins(db: Session, catalog: list[dict] = COIN_CATALOG) -> int:
    """
    Upsert catalog entries by coin id.

    Returns:
        Number of coins inserted (updates are not counted)
    """
    inserted = 0
    for entry in catalog:
        coin = db.get(Coin, entry["id"])
        if coin is None:
            db.add(Coin(**entry))
            inserted += 1
            logger.info(f"Added coin {entry['id']} ({entry['symbol']})")
        else:
            for key, value in entry.items():
                setattr(coin, key, value)
            logger.info(f"Updated coin {entry['id']}")

    db.commit()
    return inserted


def main() -> None:
    setup_logging()
    db = SessionLocal()
    try:
        inserted = seed_coins(db)
        logger.info(f"Coin catalog seeded ({inserted} new)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
