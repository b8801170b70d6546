"""Database service for MongoDB connection management with Motor async support."""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from resumable_upload.config import settings
from resumable_upload.core.config import DatabaseConfig
from resumable_upload.core.exceptions import PersistenceError
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

SESSIONS_COLLECTION = "upload_sessions"
CHUNKS_COLLECTION = "upload_chunks"


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes the ledger relies on.

    Sessions are keyed by ``_id``; chunk rows need a unique (session_id, chunk_index) key.
    """
    await db[CHUNKS_COLLECTION].create_index(
        [("session_id", ASCENDING), ("chunk_index", ASCENDING)],
        unique=True,
        name="chunk_session_index_unique"
    )
    await db[CHUNKS_COLLECTION].create_index(
        [("session_id", ASCENDING), ("completed", ASCENDING)],
        name="chunk_session_completed"
    )
    await db[SESSIONS_COLLECTION].create_index(
        [("created_at", ASCENDING)],
        name="session_created_at"
    )
    logger.info("Ledger indexes ensured")


class DatabaseService:
    """Owns the Motor client used by the session ledger (singleton)."""

    _instance: Optional['DatabaseService'] = None

    def __new__(cls, *args, **kwargs):
        """Ensure only one instance is created."""
        if cls._instance is None:
            cls._instance = super(DatabaseService, cls).__new__(cls)
        return cls._instance

    def __init__(self, config: Optional[DatabaseConfig] = None):
        # Prevent re-initialization if already initialized
        if hasattr(self, 'config'):
            return

        self.config = config or settings.get_database_config()
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        """Open the client, verify connectivity and create indexes."""
        if self.db is not None:
            return self.db

        self.client = AsyncIOMotorClient(
            self.config.url,
            maxPoolSize=self.config.max_pool_size,
            serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            connectTimeoutMS=self.config.connect_timeout_ms,
            socketTimeoutMS=self.config.socket_timeout_ms
        )

        try:
            await self.client.admin.command('ping')
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            self.client.close()
            self.client = None
            raise PersistenceError(f"Failed to connect to MongoDB: {e}", operation="connect", original_error=e)

        self.db = self.client[self.config.db_name]
        await ensure_indexes(self.db)
        logger.info(f"Connected to MongoDB database '{self.config.db_name}'")
        return self.db

    async def disconnect(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None

    async def health_check(self) -> bool:
        """Return True when the server answers a ping."""
        if self.client is None:
            return False
        try:
            await self.client.admin.command('ping')
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB health check failed: {e}")
            return False


db_service = DatabaseService()
