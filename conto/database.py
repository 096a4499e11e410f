"""
MongoDB connection management.
Single Motor client shared by the whole application.
"""
from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from conto.config import settings
from conto.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class Collections:
    """Nomi delle collezioni MongoDB."""

    # Owned by the conto engine
    CONTO_TRANSACTIONS = "conto_transactions"
    CONTO_NON_RICONCILIATE = "conto_non_riconciliate"
    CONTO_IMPORTS = "conto_imports"

    # Owned by the anagrafiche (read-only here, except the sportello backfill)
    COMPANIES = "companies"
    USERS = "users"
    SPORTELLI_LAVORO = "sportelli_lavoro"


class Database:
    """Holds the Motor client and the selected database."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect_db(cls) -> None:
        """Open the connection. Called once at application startup."""
        cls.client = AsyncIOMotorClient(settings.MONGO_URL)
        cls.db = cls.client[settings.DB_NAME]
        logger.info(f"✅ Connected to MongoDB database '{settings.DB_NAME}'")

    @classmethod
    async def close_db(cls) -> None:
        if cls.client is not None:
            cls.client.close()
            logger.info("MongoDB connection closed")
        cls.client = None
        cls.db = None

    @classmethod
    def get_db(cls):
        if cls.db is None:
            raise DatabaseError("Database not initialized")
        return cls.db


async def get_database():
    """FastAPI dependency returning the current database handle."""
    return Database.get_db()
