"""
Template price tiers stored in the `config_manager` collection.

Keys are PRICE_1..PRICE_3 for INR and PRICE_1_USD..PRICE_3_USD for USD.
Missing or unparsable values price the tier at 0.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Dict
import logging

logger = logging.getLogger(__name__)

TIER_KEYS = ["PRICE_1", "PRICE_2", "PRICE_3"]
SUPPORTED_CURRENCIES = ("INR", "USD")

DEFAULT_PRICES = {
    "PRICE_1": "99",
    "PRICE_2": "149",
    "PRICE_3": "199",
    "PRICE_1_USD": "1.99",
    "PRICE_2_USD": "2.99",
    "PRICE_3_USD": "3.99",
}


def price_keys(currency: str):
    suffix = "_USD" if currency == "USD" else ""
    return [f"{key}{suffix}" for key in TIER_KEYS]


class PriceConfigService:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.config_manager

    async def get_tier_prices(self, currency: str = "INR") -> Dict[int, float]:
        """Map of price tier (0..3) to price; tier 0 is always free"""
        keys = price_keys(currency)
        configs = await self.collection.find({"key": {"$in": keys}}).to_list(length=len(keys))
        values = {c["key"]: c.get("value") for c in configs}

        prices = {0: 0.0}
        for tier, key in enumerate(keys, start=1):
            try:
                prices[tier] = float(values.get(key) or 0)
            except (TypeError, ValueError):
                logger.warning(f"[PRICES] Unparsable value for {key}: {values.get(key)!r}")
                prices[tier] = 0.0
        return prices

    async def seed_default_prices(self, overwrite: bool = False) -> int:
        """Insert default prices; returns how many keys were written"""
        written = 0
        for key, value in DEFAULT_PRICES.items():
            if not overwrite and await self.collection.find_one({"key": key}):
                continue
            await self.collection.update_one(
                {"key": key},
                {"$set": {"key": key, "value": value, "created_on": datetime.utcnow()}},
                upsert=True
            )
            written += 1
        logger.info(f"[PRICES] Seeded {written} price keys")
        return written
