"""
Outbox Worker

Drains the outbound queue: paces sends per chat, calls the Bot API and
classifies the result as SENT, RETRY or FAILED.
"""

import datetime as dt
import json
from typing import Any, Callable, Optional, Protocol
from loguru import logger

from venuebot.config import OutboxSettings
from venuebot.message_queue.base import QueueStore
from venuebot.message_queue.worker import QueueWorker
from venuebot.models.base import utc_now
from venuebot.models.queue import OutboxMessage
from venuebot.services.telegram_client import CallFailure, CallResult, CallSuccess
from venuebot.utils.log_sanitizer import describe_exception, sanitize_for_log
from venuebot.utils.metrics import MetricsRegistry
from venuebot.utils.observability import log_exception_debug
from venuebot.utils.rate_limiter import SendRateLimiter

# Only chat messages count against the per-chat pace
PACED_METHODS = frozenset({"sendMessage"})

# A callback answer is only useful within seconds of the tap
NEVER_RETRIED_METHODS = frozenset({"answerCallbackQuery"})


class BotApiClient(Protocol):
    async def call_method(self, method: str, payload: Any) -> CallResult: ...


class OutboxWorker(QueueWorker):
    """
    Worker for the outbound message queue.

    Outcome rules:
    - ok response: SENT
    - ok=false with 429, 5xx or no error code: RETRY, honoring retry_after
    - any other ok=false: FAILED
    - answerCallbackQuery failures: always FAILED
    - transport exception or no API client configured: RETRY
    - unparseable payload: FAILED
    - attempt ceiling reached on a retryable failure: FAILED
    """

    def __init__(
        self,
        store: QueueStore[OutboxMessage],
        api_client: Optional[BotApiClient],
        rate_limiter: SendRateLimiter,
        config: OutboxSettings,
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
        self.api_client = api_client
        self.rate_limiter = rate_limiter

    async def process_once(self) -> bool:
        did_work = await super().process_once()
        self.rate_limiter.forget_idle()
        return did_work

    async def process_entry(self, entry: OutboxMessage) -> None:
        context = {"chat_id": entry.chat_id, "method": entry.method}

        if self.api_client is None:
            await self._schedule_retry(entry, "Telegram API client not configured", **context)
            return

        try:
            payload = json.loads(entry.payload_json)
        except ValueError as e:
            await self._mark_failed(entry, f"Invalid payload: {e}", cause="malformed", **context)
            return

        if entry.method in PACED_METHODS:
            await self.rate_limiter.await_permit(entry.chat_id)

        try:
            result = await self.api_client.call_method(entry.method, payload)
        except Exception as e:
            logger.warning(
                f"Telegram {entry.method} call raised for outbox entry {entry.id}: {describe_exception(e)}",
                extra=context
            )
            log_exception_debug(e, f"Outbox entry {entry.id} send exception")
            await self._schedule_retry(entry, describe_exception(e), **context)
            return

        if isinstance(result, CallSuccess):
            await self._mark_done(entry, **context)
            return

        await self._handle_failure(entry, result, context)

    async def _handle_failure(self, entry: OutboxMessage, failure: CallFailure, context: dict) -> None:
        reason = self._describe_failure(failure)
        context = {**context, "error_code": failure.error_code}

        if entry.method in NEVER_RETRIED_METHODS:
            await self._mark_failed(entry, reason, cause="not_retried", **context)
            return

        if not failure.is_retryable:
            await self._mark_failed(entry, reason, cause="rejected", **context)
            return

        await self._schedule_retry(entry, reason, retry_after=failure.retry_after, **context)

    @staticmethod
    def _describe_failure(failure: CallFailure) -> str:
        description = sanitize_for_log(failure.description) if failure.description else "no description"
        if failure.error_code is None:
            return description
        return f"{failure.error_code}: {description}"
