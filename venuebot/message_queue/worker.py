"""
Queue Worker

Background worker loop shared by the inbound and outbound queues.
"""

import asyncio
import datetime as dt
from abc import ABC, abstractmethod
from typing import Callable, Optional
from loguru import logger

from venuebot.message_queue.backoff import retry_delay
from venuebot.message_queue.base import QueueStore
from venuebot.models.base import utc_now
from venuebot.models.queue import QueueEntry, QueueStatus
from venuebot.utils.log_sanitizer import describe_exception, sanitize_error
from venuebot.utils.metrics import MetricsRegistry, metrics as default_metrics
from venuebot.utils.observability import log_exception_debug, log_queue_transition


class QueueWorker(ABC):
    """
    Background worker for a durable queue.

    Claims a bounded batch, processes it with bounded concurrency, and
    claims again straight away while there is work. When a claim comes back
    empty (or fails) it waits poll_interval before trying again.

    Every per-entry exception is turned into a queue transition here; none
    reach the loop. Cancellation is never caught. An entry abandoned
    mid-processing stays PROCESSING until its lease expires and is then
    claimed again. A claim beyond max_attempts is marked FAILED without
    being processed.

    Attributes:
        store: Queue store to drain
        poll_interval: Seconds to wait after an empty claim
        batch_size: Maximum entries per claim
        lease: Visibility timeout for claimed entries
        max_concurrency: Maximum entries processed at once
        max_attempts: Attempt ceiling before terminal failure
    """

    def __init__(
        self,
        store: QueueStore,
        poll_interval: float,
        batch_size: int,
        lease_seconds: float,
        max_concurrency: int,
        max_attempts: int,
        min_backoff_seconds: float,
        max_backoff_seconds: float,
        clock: Callable[[], dt.datetime] = utc_now,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.store = store
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.lease = dt.timedelta(seconds=lease_seconds)
        self.max_concurrency = max_concurrency
        self.max_attempts = max_attempts
        self.min_backoff_seconds = min_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.metrics = metrics or default_metrics
        self._now = clock
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        self._stopped: Optional[asyncio.Event] = None

    @property
    def queue_name(self) -> str:
        return self.store.name

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Run the worker loop until stop() is called or the task is cancelled.
        """
        if self._running:
            logger.warning(f"{self.queue_name} worker already running")
            return

        self._running = True
        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        logger.info(
            f"{self.queue_name} worker started (batch_size={self.batch_size}, "
            f"max_concurrency={self.max_concurrency}, poll_interval={self.poll_interval}s)"
        )

        try:
            while self._running:
                try:
                    did_work = await self.process_once()
                except Exception as e:
                    logger.warning(f"{self.queue_name} worker tick failed: {describe_exception(e)}")
                    log_exception_debug(e, f"{self.queue_name} worker tick exception")
                    did_work = False

                if not did_work and self._running:
                    await self._wait_for_next_poll()

        finally:
            self._running = False
            self._stopped.set()
            logger.info(f"{self.queue_name} worker stopped")

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the worker.

        Interrupts the poll wait, lets the current batch finish and waits up
        to `timeout` seconds for the loop to exit. The caller cancels the
        task if it is still running afterwards.
        """
        if not self._running:
            return

        logger.info(f"Stopping {self.queue_name} worker...")
        self._running = False
        self._wakeup.set()

        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for {self.queue_name} worker to drain its batch")

    async def process_once(self) -> bool:
        """
        Claim and process one batch.

        Returns:
            True if any entries were claimed
        """
        batch = await self.store.claim_batch(self.batch_size, self._now(), self.lease)
        if not batch:
            return False

        semaphore = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(*(self._process_with_permit(entry, semaphore) for entry in batch))
        return True

    @abstractmethod
    async def process_entry(self, entry: QueueEntry) -> None:
        """
        Handle one claimed entry and record its outcome.

        Exceptions escaping this method are treated as transient failures.
        """
        pass

    async def _process_with_permit(self, entry: QueueEntry, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            # Reclaimed after its last allowed attempt lost the lease
            if entry.attempts > self.max_attempts:
                await self._mark_failed(
                    entry,
                    f"Lease expired on attempt {entry.attempts - 1} of {self.max_attempts}",
                    cause="attempts_exhausted",
                )
                return

            try:
                await self.process_entry(entry)
            except Exception as e:
                log_exception_debug(e, f"{self.queue_name} entry {entry.id} processing exception")
                await self._schedule_retry(entry, describe_exception(e))

    async def _wait_for_next_poll(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    # ============================================
    # OUTCOMES
    # ============================================
    # Outcome writes never raise: if the store is down the entry keeps its
    # lease and is claimed again once it expires.

    async def _mark_done(self, entry: QueueEntry, **context) -> None:
        try:
            changed = await self.store.mark_done(entry.id, self._now(), claim_token=entry.claim_token)
        except Exception as e:
            self._log_outcome_write_failure("mark done", entry, e)
            return

        if not changed:
            logger.debug(f"{self.queue_name} entry {entry.id} already resolved by another claim")
            return

        self.metrics.queue_completed.inc(queue=self.queue_name)
        log_queue_transition(
            self.queue_name, entry.id, self.store.layout.done_status.value, entry.attempts, **context
        )

    async def _mark_failed(self, entry: QueueEntry, reason: Optional[str], cause: str, **context) -> None:
        safe_reason = sanitize_error(reason)
        try:
            changed = await self.store.mark_outcome(
                entry.id,
                QueueStatus.FAILED,
                last_error=safe_reason,
                processed_at=self._now(),
                next_attempt_at=None,
                claim_token=entry.claim_token,
            )
        except Exception as e:
            self._log_outcome_write_failure("mark failed", entry, e)
            return

        if changed:
            self.metrics.queue_failed.inc(queue=self.queue_name, reason=cause)
            log_queue_transition(
                self.queue_name, entry.id, QueueStatus.FAILED.value, entry.attempts,
                error=safe_reason, cause=cause, **context
            )

    async def _schedule_retry(
        self,
        entry: QueueEntry,
        reason: Optional[str],
        retry_after: Optional[float] = None,
        **context
    ) -> None:
        if entry.attempts >= self.max_attempts:
            await self._mark_failed(entry, reason, cause="attempts_exhausted", **context)
            return

        safe_reason = sanitize_error(reason)
        delay = retry_delay(entry.attempts, self.min_backoff_seconds, self.max_backoff_seconds, retry_after)
        next_attempt_at = self._now() + delay
        try:
            changed = await self.store.mark_outcome(
                entry.id,
                QueueStatus.RETRY,
                last_error=safe_reason,
                processed_at=None,
                next_attempt_at=next_attempt_at,
                claim_token=entry.claim_token,
            )
        except Exception as e:
            self._log_outcome_write_failure("schedule retry", entry, e)
            return

        if changed:
            self.metrics.queue_retried.inc(queue=self.queue_name)
            log_queue_transition(
                self.queue_name, entry.id, QueueStatus.RETRY.value, entry.attempts,
                error=safe_reason, retry_in_seconds=round(delay.total_seconds(), 3), **context
            )

    def _log_outcome_write_failure(self, action: str, entry: QueueEntry, error: Exception) -> None:
        logger.warning(
            f"{self.queue_name} {action} failed for entry {entry.id}: {describe_exception(error)}",
            extra={"queue": self.queue_name, "entry_id": entry.id}
        )
        log_exception_debug(error, f"{self.queue_name} {action} exception")
