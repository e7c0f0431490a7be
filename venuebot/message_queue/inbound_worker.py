"""
Inbound Update Worker

Drains the inbound queue and hands each decoded update to the bot router.
"""

import datetime as dt
from typing import Callable, Optional, Protocol
from loguru import logger
from pydantic import ValidationError

from venuebot.config import InboundQueueSettings
from venuebot.errors import PermanentProcessingError
from venuebot.message_queue.base import QueueStore
from venuebot.message_queue.worker import QueueWorker
from venuebot.models.base import utc_now
from venuebot.models.queue import InboundUpdate
from venuebot.models.telegram import TelegramUpdate
from venuebot.utils.log_sanitizer import describe_exception
from venuebot.utils.metrics import MetricsRegistry
from venuebot.utils.observability import log_exception_debug


class UpdateRouter(Protocol):
    """
    Bot logic entry point.

    Raise PermanentProcessingError for updates that can never succeed;
    anything else raised is retried with backoff.
    """

    async def process(self, update: TelegramUpdate) -> None: ...


class InboundUpdateWorker(QueueWorker):
    """
    Worker for the inbound update queue.

    Router success marks the update PROCESSED. An undecodable payload or a
    PermanentProcessingError marks it FAILED. Any other router error
    schedules a retry until the attempt ceiling is reached.
    """

    def __init__(
        self,
        store: QueueStore[InboundUpdate],
        router: UpdateRouter,
        config: InboundQueueSettings,
        clock: Callable[[], dt.datetime] = utc_now,
        metrics: Optional[MetricsRegistry] = None,
    ):
        super().__init__(
            store,
            poll_interval=config.poll_interval_seconds,
            batch_size=config.batch_size,
            lease_seconds=config.visibility_timeout_seconds,
            max_concurrency=config.max_concurrency,
            max_attempts=config.max_attempts,
            min_backoff_seconds=config.min_backoff_seconds,
            max_backoff_seconds=config.max_backoff_seconds,
            clock=clock,
            metrics=metrics,
        )
        self.router = router

    async def process_entry(self, entry: InboundUpdate) -> None:
        lag = (self._now() - entry.received_at).total_seconds()
        self.metrics.webhook_processing_lag.observe(max(lag, 0.0))

        context = {"update_id": entry.update_id}

        try:
            update = TelegramUpdate.model_validate_json(entry.payload_json)
        except ValidationError as e:
            logger.warning(
                f"Inbound update {entry.update_id} has an invalid payload ({e.error_count()} errors)",
                extra=context
            )
            await self._mark_failed(entry, f"Invalid payload: {e.error_count()} validation errors", cause="malformed", **context)
            return

        if update.chat_id is not None:
            context["chat_id"] = update.chat_id

        try:
            await self.router.process(update)
        except PermanentProcessingError as e:
            await self._mark_failed(entry, describe_exception(e), cause="rejected", **context)
            return
        except Exception as e:
            logger.warning(
                f"Router failed for update {entry.update_id} (attempt {entry.attempts}): {describe_exception(e)}",
                extra=context
            )
            log_exception_debug(e, f"Inbound update {entry.update_id} router exception")
            await self._schedule_retry(entry, describe_exception(e), **context)
            return

        await self._mark_done(entry, **context)
