"""
Update ingestion.
Turns a raw Telegram update into at most one inbound queue entry.
"""
import json
from enum import StrEnum
from typing import Any, Optional, Union

from loguru import logger
from pydantic import ValidationError

from venuebot.errors import MalformedUpdateError, StorageUnavailableError
from venuebot.message_queue.base import QueueStore
from venuebot.models.queue import InboundUpdate
from venuebot.models.telegram import TelegramUpdate
from venuebot.repositories.idempotency import IdempotencyGuard
from venuebot.utils.log_sanitizer import describe_exception, summarize_keys_for_log
from venuebot.utils.metrics import MetricsRegistry, metrics as default_metrics

# Range of a BSON int64, the widest integer the stores can hold
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class IngestOutcome(StrEnum):
    ENQUEUED = "enqueued"
    DUPLICATE = "duplicate"
    UNAVAILABLE = "unavailable"


class UpdateIngestor:
    """
    Raw ingestion path shared by the webhook and the long poller.

    1. Decode just enough of the update to read update_id
    2. Claim the id with the idempotency guard
    3. Insert the raw payload into the inbound queue

    The full update is decoded later by the inbound worker, so a payload the
    models cannot parse still lands in the queue and fails there visibly.
    """

    def __init__(
        self,
        guard: IdempotencyGuard,
        store: QueueStore[InboundUpdate],
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.guard = guard
        self.store = store
        self.metrics = metrics or default_metrics

    async def ingest(self, raw_payload: Union[bytes, str, dict]) -> IngestOutcome:
        """
        Accept one raw update.

        Returns:
            ENQUEUED for a new update, DUPLICATE for one already seen,
            UNAVAILABLE when storage failed and the update should be
            redelivered later

        Raises:
            MalformedUpdateError: If the payload is not an update object
        """
        data = self._decode(raw_payload)
        update_id = data["update_id"]
        chat_id, message_id = self._context_hints(data)
        context = {"update_id": update_id, "chat_id": chat_id}

        try:
            acquired = await self.guard.try_acquire(update_id, chat_id=chat_id, message_id=message_id)
        except StorageUnavailableError as e:
            logger.warning(f"Idempotency check unavailable for update {update_id}: {e}", extra=context)
            return self._record(IngestOutcome.UNAVAILABLE)

        if not acquired:
            return self._record(IngestOutcome.DUPLICATE)

        payload_json = raw_payload if isinstance(raw_payload, str) else json.dumps(data)
        try:
            stored = await self.store.enqueue(InboundUpdate(update_id=update_id, payload_json=payload_json))
        except StorageUnavailableError as e:
            logger.warning(f"Failed to queue update {update_id}: {e}", extra=context)
            await self._release(update_id)
            return self._record(IngestOutcome.UNAVAILABLE)

        if stored is None:
            return self._record(IngestOutcome.DUPLICATE)

        logger.debug(f"Queued inbound update {update_id}", extra={**context, "entry_id": stored.id})
        return self._record(IngestOutcome.ENQUEUED)

    def _decode(self, raw_payload: Union[bytes, str, dict]) -> dict[str, Any]:
        if isinstance(raw_payload, (bytes, str)):
            try:
                data = json.loads(raw_payload)
            except ValueError as e:
                self.metrics.ingested_updates.inc(outcome="malformed")
                raise MalformedUpdateError(f"Update is not valid JSON: {e}") from e
        else:
            data = raw_payload

        if not isinstance(data, dict):
            self.metrics.ingested_updates.inc(outcome="malformed")
            raise MalformedUpdateError(f"Update is a JSON {type(data).__name__}, not an object")

        update_id = data.get("update_id")
        if not isinstance(update_id, int) or isinstance(update_id, bool):
            self._reject(data, "Update has no integer update_id")
        if not INT64_MIN <= update_id <= INT64_MAX:
            self._reject(data, "Update id does not fit in 64 bits")
        return data

    def _reject(self, data: dict[str, Any], reason: str) -> None:
        logger.warning(f"Rejected update: {reason} (keys: {summarize_keys_for_log(data)})")
        self.metrics.ingested_updates.inc(outcome="malformed")
        raise MalformedUpdateError(reason)

    @staticmethod
    def _context_hints(data: dict[str, Any]) -> tuple[Optional[int], Optional[int]]:
        try:
            update = TelegramUpdate.model_validate(data)
        except ValidationError:
            return None, None
        return update.chat_id, update.message_id

    async def _release(self, update_id: int) -> None:
        try:
            await self.guard.release(update_id)
        except StorageUnavailableError as e:
            # The marker stays; Telegram's redelivery will be dropped as a duplicate
            logger.error(f"Failed to release update {update_id} after queue failure: {describe_exception(e)}")

    def _record(self, outcome: IngestOutcome) -> IngestOutcome:
        self.metrics.ingested_updates.inc(outcome=outcome.value)
        return outcome
