"""MongoDB access for stored receipts.

Receipts live as fields on payment records in the collection named by
`policy.receipts_collection`. Retrieval always asks for the newest record of a
loan, so the collection is indexed on `(loan_id, uploaded_at desc)` at startup.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient
from app.config import settings
from app.policy import policy

logger = logging.getLogger("receipt_vault.db")

RECEIPT_LOOKUP_INDEX = [("loan_id", 1), ("uploaded_at", -1)]


class Database:
    """Holds the Motor client for the process."""
    client: AsyncIOMotorClient = None


db = Database()


async def get_database():
    """FastAPI dependency returning the receipt vault database.

    Raises:
        ConnectionError: If `connect_to_mongo()` has not run yet.
    """
    if db.client is None:
        logger.error("Receipt database requested before connect_to_mongo().")
        raise ConnectionError("Database client is not initialized.")

    return db.client[settings.MONGO_DB_NAME]


def receipts_of(database):
    """Returns the collection holding payment records and their receipts."""
    return database[policy.receipts_collection]


async def ensure_indexes(database):
    """Creates the index backing "latest receipt for a loan" lookups.

    Idempotent: MongoDB treats re-creating an identical index as a no-op.
    """
    collection = receipts_of(database)
    name = await collection.create_index(RECEIPT_LOOKUP_INDEX, name="loan_latest_receipt")
    logger.info(f"📇 Receipt lookup index ready on '{policy.receipts_collection}' ({name})")
    return name


async def connect_to_mongo():
    """Opens the Motor pool, pings the server and prepares the receipt index.

    Raises:
        Exception: Any connection or index error, so startup fails loudly.
    """
    try:
        logger.info("🔌 Connecting to MongoDB...")
        db.client = AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), maxPoolSize=10)

        await db.client.admin.command("ping")
        await ensure_indexes(db.client[settings.MONGO_DB_NAME])
        logger.info(f"✅ Connected to MongoDB (DB: {settings.MONGO_DB_NAME})")

    except Exception as e:
        logger.critical(f"❌ MongoDB Connection Error: {e}")
        raise


async def close_mongo_connection():
    """Closes the Motor pool, if one is open."""
    if db.client:
        db.client.close()
        db.client = None
        logger.info("🛑 Closed MongoDB connection")
