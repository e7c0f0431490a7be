"""
Idempotency Guard
Records each inbound Telegram update id exactly once.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import Field
from pymongo.errors import DuplicateKeyError, PyMongoError

from .base import BaseRepository
from ..models.base import MongoBaseModel, UtcDatetime, utc_now
from ..utils.observability import logger


class ProcessedUpdate(MongoBaseModel):
    """Marker document for an update id that has been accepted once."""
    update_id: int
    chat_id: Optional[int] = None
    message_id: Optional[int] = None
    acquired_at: UtcDatetime = Field(default_factory=utc_now)


class IdempotencyGuard(ABC):
    """Abstract idempotency guard interface."""

    @abstractmethod
    async def try_acquire(
        self,
        update_id: int,
        chat_id: Optional[int] = None,
        message_id: Optional[int] = None,
    ) -> bool:
        """
        Claim an update id.

        Args:
            update_id: Platform update identifier
            chat_id: Optional chat hint stored alongside the marker
            message_id: Optional message hint stored alongside the marker

        Returns:
            True the first time the id is seen, False for a duplicate

        Raises:
            StorageUnavailableError: If the store failed; callers must treat
                this as "not acquired"
        """
        pass

    @abstractmethod
    async def release(self, update_id: int) -> None:
        """
        Forget an update id.

        Only for undoing an acquire whose follow-up enqueue failed, so the
        platform's redelivery is accepted.
        """
        pass


class InMemoryIdempotencyGuard(IdempotencyGuard):
    """Process-local guard for tests and single-instance development."""

    def __init__(self):
        self._seen: set[int] = set()
        self._lock = asyncio.Lock()

    async def try_acquire(
        self,
        update_id: int,
        chat_id: Optional[int] = None,
        message_id: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            if update_id in self._seen:
                return False
            self._seen.add(update_id)
            return True

    async def release(self, update_id: int) -> None:
        async with self._lock:
            self._seen.discard(update_id)


class MongoIdempotencyRepository(BaseRepository[ProcessedUpdate], IdempotencyGuard):
    """
    Guard backed by a unique index on update_id.

    Races between concurrent acquirers are settled by the index itself
    (DuplicateKeyError), never by a read before the insert.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "telegram_processed_updates", ProcessedUpdate)

    async def create_indexes(self) -> None:
        await self.collection.create_index("update_id", unique=True, name="idx_update_id_unique")

    async def try_acquire(
        self,
        update_id: int,
        chat_id: Optional[int] = None,
        message_id: Optional[int] = None,
    ) -> bool:
        marker = ProcessedUpdate(update_id=update_id, chat_id=chat_id, message_id=message_id)
        try:
            await self.collection.insert_one(self._to_document(marker))
        except DuplicateKeyError:
            logger.debug(f"Duplicate update ignored: {update_id}", extra={"update_id": update_id})
            return False
        except PyMongoError as e:
            raise self._storage_failure("try_acquire", e) from e

        return True

    async def release(self, update_id: int) -> None:
        try:
            await self.collection.delete_one({"update_id": update_id})
        except PyMongoError as e:
            raise self._storage_failure("release", e) from e
