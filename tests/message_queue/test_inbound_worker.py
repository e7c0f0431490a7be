"""
Tests for InboundUpdateWorker.
"""
import datetime as dt
import json

import pytest

from venuebot.config import InboundQueueSettings
from venuebot.errors import PermanentProcessingError
from venuebot.message_queue import InboundUpdateWorker, InMemoryQueueStore
from venuebot.models.queue import InboundUpdate, QueueStatus
from venuebot.repositories.idempotency import InMemoryIdempotencyGuard
from venuebot.services.ingestion import IngestOutcome, UpdateIngestor
from venuebot.utils.metrics import metrics

from tests.message_queue.fakes import RecordingRouter


def update_payload(update_id: int, chat_id: int = 555, text: str = "/start") -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 10,
            "date": 1767225600,
            "chat": {"id": chat_id, "type": "private"},
            "from": {"id": chat_id, "is_bot": False, "first_name": "Ana"},
            "text": text,
        },
    }


@pytest.fixture
def store():
    return InMemoryQueueStore.inbound()


@pytest.fixture
def make_worker(store, clock):
    def factory(router, **overrides):
        return InboundUpdateWorker(store, router, InboundQueueSettings(**overrides), clock=clock)
    return factory


async def enqueue(store, update_id: int, payload_json: str = None, received_at: dt.datetime = None):
    fields = {
        "update_id": update_id,
        "payload_json": payload_json or json.dumps(update_payload(update_id)),
    }
    if received_at is not None:
        fields["received_at"] = received_at
    return await store.enqueue(InboundUpdate(**fields))


class TestInboundUpdateWorker:
    """Test suite for InboundUpdateWorker."""

    async def test_router_success_marks_processed(self, store, make_worker, clock):
        router = RecordingRouter()
        worker = make_worker(router)
        stored = await enqueue(store, 1)

        assert await worker.process_once() is True

        entry = await store.get(stored.id)
        assert entry.status == QueueStatus.PROCESSED
        assert entry.processed_at == clock()
        assert len(router.updates) == 1
        assert router.updates[0].update_id == 1
        assert router.updates[0].chat_id == 555
        assert router.updates[0].message.text == "/start"

    async def test_router_error_schedules_retry(self, store, make_worker, clock):
        worker = make_worker(RecordingRouter(error=RuntimeError("db timeout")))
        stored = await enqueue(store, 2)

        await worker.process_once()

        entry = await store.get(stored.id)
        assert entry.status == QueueStatus.RETRY
        assert entry.last_error == "db timeout"
        # min backoff 0.5s doubled once for the first attempt
        assert entry.next_attempt_at == clock() + dt.timedelta(seconds=1)

    async def test_router_retried_until_ceiling(self, store, make_worker, clock):
        router = RecordingRouter(error=RuntimeError("still broken"))
        worker = make_worker(router, max_attempts=2)
        stored = await enqueue(store, 3)

        await worker.process_once()
        clock.advance(120)
        await worker.process_once()

        entry = await store.get(stored.id)
        assert entry.status == QueueStatus.FAILED
        assert entry.attempts == 2
        assert len(router.updates) == 2

        clock.advance(10 ** 6)
        assert await worker.process_once() is False

    async def test_permanent_error_fails_without_retry(self, store, make_worker):
        router = RecordingRouter(error=PermanentProcessingError("unknown table token"))
        worker = make_worker(router)
        stored = await enqueue(store, 4)

        await worker.process_once()

        entry = await store.get(stored.id)
        assert entry.status == QueueStatus.FAILED
        assert entry.attempts == 1
        assert entry.last_error == "unknown table token"
        assert metrics.queue_failed.value(queue="inbound", reason="rejected") == 1

    async def test_undecodable_payload_fails_first_attempt(self, store, make_worker):
        router = RecordingRouter()
        worker = make_worker(router)
        stored = await enqueue(store, 5, payload_json='{"update_id": "not-a-number"}')

        await worker.process_once()

        entry = await store.get(stored.id)
        assert entry.status == QueueStatus.FAILED
        assert entry.last_error.startswith("Invalid payload")
        assert router.updates == []

    async def test_records_processing_lag(self, store, make_worker, clock):
        worker = make_worker(RecordingRouter())
        await enqueue(store, 6, received_at=clock() - dt.timedelta(seconds=3))

        await worker.process_once()

        assert metrics.webhook_processing_lag.count() == 1


class TestInboundDeduplication:
    """A platform update delivered twice is routed once."""

    async def test_same_update_twice_routes_once(self, store, make_worker):
        ingestor = UpdateIngestor(InMemoryIdempotencyGuard(), store)
        router = RecordingRouter()
        worker = make_worker(router)
        raw = json.dumps(update_payload(77))

        assert await ingestor.ingest(raw) is IngestOutcome.ENQUEUED
        assert await ingestor.ingest(raw) is IngestOutcome.DUPLICATE
        assert await store.depth() == 1

        await worker.process_once()
        await worker.process_once()

        assert [update.update_id for update in router.updates] == [77]
