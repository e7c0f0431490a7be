"""
Long polling.
Alternative to the webhook for environments without a public URL.
"""
import asyncio
from typing import Optional, Protocol

from loguru import logger

from venuebot.errors import MalformedUpdateError
from venuebot.services.ingestion import IngestOutcome, UpdateIngestor
from venuebot.utils.log_sanitizer import describe_exception
from venuebot.utils.observability import log_exception_debug


class UpdateSource(Protocol):
    async def get_updates(self, offset: Optional[int], timeout_seconds: int) -> list[dict]: ...


class UpdatePoller:
    """
    Long-polls getUpdates and feeds every update to the ingestor.

    The offset only moves past updates the ingestor has accepted (or
    rejected as duplicate or malformed). When storage is unavailable the
    rest of the batch is left for Telegram to deliver again.
    """

    def __init__(
        self,
        source: UpdateSource,
        ingestor: UpdateIngestor,
        timeout_seconds: int = 25,
        error_delay_seconds: float = 1.0,
    ):
        self.source = source
        self.ingestor = ingestor
        self.timeout_seconds = timeout_seconds
        self.error_delay_seconds = error_delay_seconds
        self.offset: Optional[int] = None
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        self._wakeup = asyncio.Event()
        logger.info(f"Telegram long polling started (timeout={self.timeout_seconds}s)")

        try:
            while self._running:
                try:
                    await self.poll_once()
                except Exception as e:
                    logger.warning(f"Telegram long polling error: {describe_exception(e)}")
                    log_exception_debug(e, "Telegram long polling exception")
                    await self._pause()
        finally:
            self._running = False
            logger.info("Telegram long polling stopped")

    def stop(self) -> None:
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()

    async def poll_once(self) -> int:
        """
        Fetch one batch of updates and ingest it.

        Returns:
            Number of updates newly queued
        """
        updates = await self.source.get_updates(self.offset, self.timeout_seconds)
        queued = 0

        for raw in sorted(updates, key=self._sort_key):
            update_id = raw.get("update_id") if isinstance(raw, dict) else None
            try:
                outcome = await self.ingestor.ingest(raw)
            except MalformedUpdateError as e:
                logger.warning(f"Skipping malformed polled update: {e}")
                if isinstance(update_id, int):
                    self.offset = update_id + 1
                continue

            if outcome is IngestOutcome.UNAVAILABLE:
                logger.warning(f"Storage unavailable, leaving update {update_id} for redelivery")
                await self._pause()
                break

            if outcome is IngestOutcome.ENQUEUED:
                queued += 1
            self.offset = update_id + 1

        return queued

    @staticmethod
    def _sort_key(raw) -> int:
        update_id = raw.get("update_id") if isinstance(raw, dict) else None
        return update_id if isinstance(update_id, int) else -1

    async def _pause(self) -> None:
        if self._wakeup is None:
            await asyncio.sleep(self.error_delay_seconds)
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.error_delay_seconds)
        except asyncio.TimeoutError:
            pass
