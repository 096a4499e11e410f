"""
Script per creare gli indici MongoDB dei conti.

Esegui con: python -m conto.scripts.create_indexes
"""
import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from conto.config import settings
from conto.database import Collections

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def safe_create_index(collection, *args, **kwargs):
    """Crea un indice in modo sicuro, ignorando conflitti con indici esistenti."""
    try:
        return await collection.create_index(*args, **kwargs)
    except OperationFailure as e:
        if e.code == 86:  # IndexKeySpecsConflict
            logger.warning(f"⚠️ Indice già esistente con specifiche diverse, saltato: {args}")
            return None
        raise


async def create_indexes(db) -> list:
    """Crea gli indici delle collezioni dei conti."""
    logger.info("🚀 Creazione indici MongoDB...")
    indexes_created = []

    # ============================================
    # CONTO TRANSACTIONS / NON RICONCILIATE
    # ============================================
    for name in (Collections.CONTO_TRANSACTIONS, Collections.CONTO_NON_RICONCILIATE):
        coll = db[name]
        await safe_create_index(coll, "id", unique=True)
        await safe_create_index(coll, "import_key")
        await safe_create_index(coll, [("account", ASCENDING), ("date", DESCENDING), ("created_at", DESCENDING)])
        await safe_create_index(coll, [("account", ASCENDING), ("user_id", ASCENDING), ("date", DESCENDING)])
        await safe_create_index(coll, [("account", ASCENDING), ("company_id", ASCENDING), ("date", DESCENDING)])
        indexes_created.append(f"{name}: id, import_key, account/date, account/user_id, account/company_id")
        logger.info(f"✅ Indici {name} creati")

    await safe_create_index(
        db[Collections.CONTO_TRANSACTIONS],
        [("account", ASCENDING), ("responsabile_id", ASCENDING), ("date", DESCENDING)]
    )

    # ============================================
    # CONTO IMPORTS
    # ============================================
    # The unique hash is what makes a file importable at most once
    await safe_create_index(db[Collections.CONTO_IMPORTS], "file_hash", unique=True)
    await safe_create_index(db[Collections.CONTO_IMPORTS], [("account", ASCENDING), ("created_at", DESCENDING)])
    indexes_created.append("conto_imports: file_hash (unique), account/created_at")
    logger.info("✅ Indici conto_imports creati")

    logger.info(f"🎉 Creati {len(indexes_created)} gruppi di indici")
    return indexes_created


async def show_indexes(db):
    """Mostra gli indici esistenti sulle collezioni dei conti."""
    logger.info("\n📊 INDICI ESISTENTI:")
    logger.info("=" * 50)

    for coll_name in (Collections.CONTO_TRANSACTIONS, Collections.CONTO_NON_RICONCILIATE, Collections.CONTO_IMPORTS):
        indexes = await db[coll_name].index_information()
        logger.info(f"\n{coll_name}:")
        for idx_name, idx_info in indexes.items():
            if idx_name != "_id_":
                logger.info(f"  • {idx_name}: {idx_info.get('key', [])}")


async def main(show: bool = False):
    client = AsyncIOMotorClient(settings.MONGO_URL)
    try:
        db = client[settings.DB_NAME]
        if show:
            await show_indexes(db)
        else:
            await create_indexes(db)
    finally:
        client.close()


if __name__ == "__main__":
    import sys

    asyncio.run(main(show=len(sys.argv) > 1 and sys.argv[1] == "--show"))
