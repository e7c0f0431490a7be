"""
MongoDB Connection Management

One Motor client per process, shared by the queue stores and the
idempotency repository.
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
from ..config import settings
from ..utils.log_sanitizer import describe_exception
from ..utils.observability import logger


class DatabaseManager:
    """
    Process-wide Motor client holder.

    The pipeline collections (inbound updates, outbox, processed update
    markers) all live in settings.mongodb_database.
    """

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[AsyncIOMotorClient] = None
    _database: Optional[AsyncIOMotorDatabase] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def connected(self) -> bool:
        return self._database is not None

    async def connect(self) -> None:
        """
        Open the client. Calling it again keeps a client that still answers
        a ping and replaces one that does not.
        """
        if self._client is not None:
            try:
                await self._client.admin.command("ping")
                logger.debug("MongoDB client still healthy, keeping it")
                return
            except Exception as e:
                logger.warning(f"MongoDB client unhealthy ({describe_exception(e)}), reconnecting")
                self._client = None
                self._database = None

        logger.info(
            f"Connecting to MongoDB database '{settings.mongodb_database}'",
            extra={
                "max_pool_size": settings.mongodb_max_pool_size,
                "environment": settings.environment
            }
        )
        self._client = AsyncIOMotorClient(
            settings.mongodb_uri,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
        )
        self._database = self._client[settings.mongodb_database]

    async def disconnect(self) -> None:
        """Close the client. A no-op when nothing is open."""
        if self._client is None:
            self._database = None
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """
        Connected database.

        Raises:
            RuntimeError: If connect() has not been awaited
        """
        if self._database is None:
            raise RuntimeError("MongoDB is not connected; await db_manager.connect() first")
        return self._database

    async def ping(self) -> None:
        """
        Round-trip to the server.

        Raises:
            RuntimeError: If not connected
            pymongo.errors.PyMongoError: If the server does not answer
        """
        await self.database.command("ping")

    async def create_indexes(self) -> None:
        """
        Create the claim, retention and dedup indexes on every pipeline
        collection. Safe to run on every startup.
        """
        # Local imports: message_queue.mongo imports repositories.base
        from ..message_queue.mongo import MongoQueueStore
        from .idempotency import MongoIdempotencyRepository

        db = self.database
        await MongoQueueStore.inbound(db).create_indexes()
        await MongoQueueStore.outbox(db).create_indexes()
        await MongoIdempotencyRepository(db).create_indexes()

        logger.info("Pipeline indexes ensured on inbound, outbox and processed-update collections")


db_manager = DatabaseManager()


async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency returning the connected database."""
    return db_manager.database
