"""
Generic Repository Base Class
Shared plumbing for async MongoDB collections: model conversion,
id handling and driver-error translation.
"""
from typing import Generic, TypeVar, Type, Optional, Dict, Any
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId
from enum import Enum
import datetime as dt

from ..errors import StorageUnavailableError
from ..models.base import MongoBaseModel
from ..utils.log_sanitizer import describe_exception
from ..utils.observability import logger, log_exception_debug

# Generic type for domain models
T = TypeVar("T", bound=MongoBaseModel)


def to_storage_datetime(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """
    Convert to the naive-UTC form MongoDB stores.

    Keeps query parameters comparable with stored values regardless of
    whether the driver is configured tz-aware.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(dt.UTC).replace(tzinfo=None)
    return value


def _to_storage_value(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return to_storage_datetime(value)
    if isinstance(value, Enum):
        return value.value
    return value


def to_object_id(document_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


class BaseRepository(Generic[T]):
    """
    Typed access to one MongoDB collection of pipeline records.

    Usage:
        class OutboxStore(BaseRepository[OutboxMessage]):
            def __init__(self, database: AsyncIOMotorDatabase):
                super().__init__(database, "telegram_outbox", OutboxMessage)
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        collection_name: str,
        model_class: Type[T]
    ):
        self.database = database
        self.collection: AsyncIOMotorCollection = database[collection_name]
        self.model_class = model_class
        self.collection_name = collection_name

    async def find_by_id(self, document_id: str) -> Optional[T]:
        """Load one document; None for a missing or malformed id."""
        object_id = to_object_id(document_id)
        if object_id is None:
            return None

        doc = await self.collection.find_one({"_id": object_id})

        if doc is None:
            return None

        return self._to_model(doc)

    async def count(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection.count_documents(filter_dict or {})

    def _to_document(self, model: T) -> Dict[str, Any]:
        """Serialize a model for insertion, leaving `_id` to MongoDB."""
        doc = model.model_dump(exclude={"id"}, mode="python")
        return {key: _to_storage_value(value) for key, value in doc.items()}

    def _to_model(self, doc: Dict[str, Any]) -> T:
        """Validate a stored document; `_id` comes back as its hex string."""
        if "_id" in doc:
            doc["_id"] = str(doc["_id"])

        return self.model_class.model_validate(doc)

    def _storage_failure(self, operation: str, error: Exception) -> StorageUnavailableError:
        """Log a driver failure once and return the exception to raise."""
        logger.warning(
            f"{self.collection_name} {operation} failed: {describe_exception(error)}",
            extra={"collection": self.collection_name, "operation": operation}
        )
        log_exception_debug(error, f"{self.collection_name} {operation} exception")
        return StorageUnavailableError(f"{self.collection_name}.{operation}")
