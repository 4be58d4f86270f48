"""
Seed script for the Biodata Service.

Creates:
- Default template prices (PRICE_1..PRICE_3, INR and USD) in config_manager
- Indexes on user_biodata (including the unique transaction_id index)

Pass --overwrite to reset prices that already exist.
"""

import asyncio
import sys
from pathlib import Path
from motor.motor_asyncio import AsyncIOMotorClient

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent))

from config import Settings
from core.biodata_store import BiodataStore
from core.price_config import PriceConfigService


async def seed_database(overwrite: bool = False):
    """Seed the database with initial data"""
    settings = Settings.from_env()
    client = AsyncIOMotorClient(settings.mongo_url)
    db = client[settings.db_name]

    print("🌱 Starting database seeding...")

    try:
        # ============================================
        # 1. TEMPLATE PRICES
        # ============================================
        print("💰 Seeding template prices...")
        written = await PriceConfigService(db).seed_default_prices(overwrite=overwrite)
        if written:
            print(f"   ✅ {written} price keys written")
        else:
            print("   ⚠️  Prices already exist. Skipping...")

        # ============================================
        # 2. INDEXES
        # ============================================
        print("🗂️  Ensuring biodata indexes...")
        await BiodataStore(db).ensure_indexes()
        print("   ✅ Indexes ready")

        print("\n✅ Seeding complete")
        print(f"   - Database: {settings.db_name}")

    except Exception as e:
        print(f"\n❌ Error during seeding: {str(e)}")
        raise
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(seed_database(overwrite="--overwrite" in sys.argv[1:]))
