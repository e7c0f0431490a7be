"""
MongoDB Queue Store

Durable queue store on Motor. MongoDB has no row-level SKIP LOCKED, so
claims use compare-and-swap instead: each row is taken with one
find_one_and_update whose filter re-checks claimability atomically.
Concurrent claimers can therefore never receive the same row, at the
cost of one round trip per claimed row.
"""

import datetime as dt
import uuid
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from venuebot.message_queue.base import QueueStore, T
from venuebot.models.queue import (
    CLAIMABLE_STATUSES,
    INBOUND_LAYOUT,
    OUTBOX_LAYOUT,
    TERMINAL_STATUSES,
    QueueLayout,
    QueueStatus,
)
from venuebot.repositories.base import BaseRepository, to_object_id, to_storage_datetime
from venuebot.utils.log_sanitizer import sanitize_error
from venuebot.utils.observability import logger


class MongoQueueStore(BaseRepository[T], QueueStore[T]):
    """
    Queue store backed by a MongoDB collection.

    Entries are never deleted here; retention is handled outside the
    pipeline (e.g. a TTL index or an archival job).
    """

    def __init__(self, database: AsyncIOMotorDatabase, layout: QueueLayout):
        BaseRepository.__init__(self, database, layout.collection, layout.model)
        QueueStore.__init__(self, layout)

    @classmethod
    def inbound(cls, database: AsyncIOMotorDatabase) -> "MongoQueueStore":
        return cls(database, INBOUND_LAYOUT)

    @classmethod
    def outbox(cls, database: AsyncIOMotorDatabase) -> "MongoQueueStore":
        return cls(database, OUTBOX_LAYOUT)

    async def create_indexes(self) -> None:
        """Indexes for the claim query and, on the inbound queue, dedup."""
        await self.collection.create_index(
            [("status", ASCENDING), ("next_attempt_at", ASCENDING), (self.layout.arrival_field, ASCENDING)],
            name="idx_claimable"
        )
        await self.collection.create_index(
            [("status", ASCENDING), ("processed_at", DESCENDING)],
            name="idx_status_processed"
        )
        if self.layout.dedup_field is not None:
            await self.collection.create_index(
                self.layout.dedup_field,
                unique=True,
                name=f"idx_{self.layout.dedup_field}_unique"
            )

    async def enqueue(self, entry: T) -> Optional[T]:
        stored = entry.model_copy(
            update={
                "id": None,
                "status": QueueStatus.PENDING,
                "attempts": 0,
                "last_error": None,
                "processed_at": None,
                "next_attempt_at": None,
                "claim_token": None,
            }
        )
        try:
            result = await self.collection.insert_one(self._to_document(stored))
        except DuplicateKeyError:
            logger.debug(
                f"{self.name} enqueue skipped: duplicate {self.layout.dedup_field}",
                extra={"queue": self.name}
            )
            return None
        except PyMongoError as e:
            raise self._storage_failure("enqueue", e) from e

        stored.id = str(result.inserted_id)
        return stored

    async def claim_batch(self, limit: int, now: dt.datetime, lease: dt.timedelta) -> list[T]:
        now_value = to_storage_datetime(now)
        lease_until = to_storage_datetime(now + lease)
        claimable = {
            "status": {"$in": [s.value for s in CLAIMABLE_STATUSES]},
            "$or": [
                {"next_attempt_at": None},
                {"next_attempt_at": {"$lte": now_value}},
            ],
        }

        claimed: list[T] = []
        try:
            while len(claimed) < limit:
                doc = await self.collection.find_one_and_update(
                    claimable,
                    {
                        "$set": {
                            "status": QueueStatus.PROCESSING.value,
                            "next_attempt_at": lease_until,
                            "last_error": None,
                            "claim_token": uuid.uuid4().hex,
                        },
                        "$inc": {"attempts": 1},
                    },
                    sort=[(self.layout.arrival_field, ASCENDING), ("_id", ASCENDING)],
                    return_document=ReturnDocument.AFTER,
                )
                if doc is None:
                    break
                claimed.append(self._to_model(doc))
        except PyMongoError as e:
            # Rows already claimed stay leased and are recovered on expiry.
            raise self._storage_failure("claim_batch", e) from e

        return claimed

    async def mark_done(
        self,
        entry_id: str,
        at: dt.datetime,
        claim_token: Optional[str] = None,
    ) -> bool:
        return await self._update_open_entry(
            "mark_done",
            entry_id,
            claim_token,
            {
                "status": self.layout.done_status.value,
                "processed_at": to_storage_datetime(at),
                "next_attempt_at": None,
                "last_error": None,
            },
        )

    async def mark_outcome(
        self,
        entry_id: str,
        status: QueueStatus,
        last_error: Optional[str],
        processed_at: Optional[dt.datetime] = None,
        next_attempt_at: Optional[dt.datetime] = None,
        claim_token: Optional[str] = None,
    ) -> bool:
        self._check_outcome(status, processed_at, next_attempt_at)
        return await self._update_open_entry(
            "mark_outcome",
            entry_id,
            claim_token,
            {
                "status": status.value,
                "last_error": sanitize_error(last_error),
                "processed_at": to_storage_datetime(processed_at),
                "next_attempt_at": to_storage_datetime(next_attempt_at),
            },
        )

    async def depth(self) -> int:
        try:
            return await self.count({"status": {"$nin": [s.value for s in TERMINAL_STATUSES]}})
        except PyMongoError as e:
            raise self._storage_failure("depth", e) from e

    async def get(self, entry_id: str) -> Optional[T]:
        try:
            return await self.find_by_id(entry_id)
        except PyMongoError as e:
            raise self._storage_failure("get", e) from e

    async def failed(self, limit: int = 100) -> list[T]:
        try:
            cursor = (
                self.collection.find({"status": QueueStatus.FAILED.value})
                .sort("processed_at", DESCENDING)
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise self._storage_failure("failed", e) from e

        return [self._to_model(doc) for doc in docs]

    async def _update_open_entry(
        self,
        operation: str,
        entry_id: str,
        claim_token: Optional[str],
        fields: dict,
    ) -> bool:
        object_id = to_object_id(entry_id)
        if object_id is None:
            return False

        query = {
            "_id": object_id,
            "status": {"$nin": [s.value for s in TERMINAL_STATUSES]},
        }
        if claim_token is not None:
            query["claim_token"] = claim_token

        try:
            result = await self.collection.update_one(query, {"$set": fields})
        except PyMongoError as e:
            raise self._storage_failure(operation, e) from e

        return result.matched_count == 1
