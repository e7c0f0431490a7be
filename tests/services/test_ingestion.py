"""
Tests for UpdateIngestor.
"""
import datetime as dt
import json
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from venuebot.errors import MalformedUpdateError, StorageUnavailableError
from venuebot.message_queue import InMemoryQueueStore, MongoQueueStore
from venuebot.models.queue import QueueStatus
from venuebot.repositories.idempotency import InMemoryIdempotencyGuard, MongoIdempotencyRepository
from venuebot.services.ingestion import IngestOutcome, UpdateIngestor
from venuebot.utils.metrics import metrics


def raw_update(update_id: int = 900) -> dict:
    return {
        "update_id": update_id,
        "message": {"message_id": 3, "chat": {"id": 12, "type": "private"}, "text": "hi"},
    }


@pytest.fixture
def store():
    return InMemoryQueueStore.inbound()


@pytest.fixture
def guard():
    return InMemoryIdempotencyGuard()


@pytest.fixture
def ingestor(guard, store):
    return UpdateIngestor(guard, store)


class TestUpdateIngestor:
    """Test suite for UpdateIngestor."""

    async def test_new_update_is_enqueued(self, ingestor, store, clock):
        body = json.dumps(raw_update())

        assert await ingestor.ingest(body) is IngestOutcome.ENQUEUED

        claimed = await store.claim_batch(10, clock(), dt.timedelta(seconds=30))
        assert len(claimed) == 1
        assert claimed[0].update_id == 900
        assert claimed[0].payload_json == body
        assert metrics.ingested_updates.value(outcome="enqueued") == 1

    async def test_bytes_and_dict_payloads(self, ingestor, store):
        assert await ingestor.ingest(json.dumps(raw_update(1)).encode()) is IngestOutcome.ENQUEUED
        assert await ingestor.ingest(raw_update(2)) is IngestOutcome.ENQUEUED
        assert await store.depth() == 2

    async def test_duplicate_is_reported(self, ingestor, store):
        await ingestor.ingest(raw_update())

        assert await ingestor.ingest(raw_update()) is IngestOutcome.DUPLICATE
        assert await store.depth() == 1
        assert metrics.ingested_updates.value(outcome="duplicate") == 1

    @pytest.mark.parametrize(
        "body",
        ["{not json", "[1, 2]", '{"message": {}}', '{"update_id": "12"}', '{"update_id": true}'],
    )
    async def test_malformed_update_raises(self, ingestor, store, body):
        with pytest.raises(MalformedUpdateError):
            await ingestor.ingest(body)

        assert await store.depth() == 0
        assert metrics.ingested_updates.value(outcome="malformed") == 1

    @pytest.mark.parametrize("update_id", [2 ** 63, -(2 ** 63) - 1, 10 ** 20])
    async def test_update_id_outside_int64_is_malformed(self, mongo_db, update_id):
        store = MongoQueueStore.inbound(mongo_db)
        guard = MongoIdempotencyRepository(mongo_db)
        ingestor = UpdateIngestor(guard, store)

        with pytest.raises(MalformedUpdateError):
            await ingestor.ingest(json.dumps(raw_update(update_id)))

        assert await store.depth() == 0
        assert await mongo_db["telegram_processed_updates"].count_documents({}) == 0
        assert metrics.ingested_updates.value(outcome="malformed") == 1

    async def test_int64_bounds_are_accepted(self, ingestor, store):
        assert await ingestor.ingest(raw_update(2 ** 63 - 1)) is IngestOutcome.ENQUEUED
        assert await ingestor.ingest(raw_update(-(2 ** 63))) is IngestOutcome.ENQUEUED
        assert await store.depth() == 2

    async def test_rejection_logs_key_summary(self, ingestor):
        messages = []
        handler_id = logger.add(messages.append, format="{message}", level="WARNING")
        try:
            with pytest.raises(MalformedUpdateError):
                await ingestor.ingest({"message": {}, "edited_message": {}})
        finally:
            logger.remove(handler_id)

        assert len(messages) == 1
        assert "keys: message,edited_message" in messages[0]

    async def test_unparseable_body_with_update_id_still_queued(self, ingestor, store):
        """The worker, not the ingestor, rejects updates the models cannot read."""
        assert await ingestor.ingest({"update_id": 5, "message": "oops"}) is IngestOutcome.ENQUEUED
        assert await store.depth() == 1

    async def test_guard_failure_is_unavailable(self, store):
        guard = AsyncMock()
        guard.try_acquire.side_effect = StorageUnavailableError("try_acquire")
        ingestor = UpdateIngestor(guard, store)

        assert await ingestor.ingest(raw_update()) is IngestOutcome.UNAVAILABLE
        assert await store.depth() == 0

    async def test_queue_failure_releases_marker(self, guard):
        """A failed insert forgets the update id so redelivery is accepted."""
        broken_store = AsyncMock()
        broken_store.enqueue.side_effect = StorageUnavailableError("enqueue")
        ingestor = UpdateIngestor(guard, broken_store)

        assert await ingestor.ingest(raw_update()) is IngestOutcome.UNAVAILABLE
        assert await guard.try_acquire(900) is True

    async def test_passes_context_hints_to_guard(self, store):
        guard = AsyncMock()
        guard.try_acquire.return_value = True
        ingestor = UpdateIngestor(guard, store)

        await ingestor.ingest(raw_update())

        guard.try_acquire.assert_awaited_once_with(900, chat_id=12, message_id=3)

    async def test_with_mongo_backends(self, mongo_db):
        store = MongoQueueStore.inbound(mongo_db)
        guard = MongoIdempotencyRepository(mongo_db)
        await store.create_indexes()
        await guard.create_indexes()
        ingestor = UpdateIngestor(guard, store)

        assert await ingestor.ingest(raw_update(31)) is IngestOutcome.ENQUEUED
        assert await ingestor.ingest(raw_update(31)) is IngestOutcome.DUPLICATE

        assert await mongo_db["telegram_inbound_updates"].count_documents({}) == 1
        doc = await mongo_db["telegram_inbound_updates"].find_one({"update_id": 31})
        assert doc["status"] == QueueStatus.PENDING.value
