"""
Base Queue Store Interface

Abstract interface for the durable claim/lease queues shared by the inbound
update queue and the outbound message queue.
"""

import datetime as dt
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from venuebot.models.queue import QueueEntry, QueueLayout, QueueStatus

T = TypeVar("T", bound=QueueEntry)


class QueueStore(ABC, Generic[T]):
    """
    Abstract queue store.

    Implementations must provide:
    - Enqueue: Insert a PENDING entry (deduplicated when the layout says so)
    - Claim: Atomically lease a batch of claimable entries, oldest first
    - Mark done: Terminal success
    - Mark outcome: RETRY with a next attempt time, or terminal FAILED
    - Depth: Count of entries not yet terminal

    Terminal entries are never claimed or modified again.
    """

    def __init__(self, layout: QueueLayout):
        self.layout = layout

    @property
    def name(self) -> str:
        return self.layout.name

    @abstractmethod
    async def enqueue(self, entry: T) -> Optional[T]:
        """
        Insert an entry as PENDING with zero attempts.

        Args:
            entry: Entry to insert (status, attempts and lease fields are reset)

        Returns:
            The stored entry with `id` populated, or None when the layout's
            dedup field already exists in the queue
        """
        pass

    @abstractmethod
    async def claim_batch(self, limit: int, now: dt.datetime, lease: dt.timedelta) -> list[T]:
        """
        Claim up to `limit` entries for exclusive processing.

        Claimable entries are PENDING, RETRY or PROCESSING whose
        next_attempt_at is unset or not after `now`. Each claimed entry gets
        attempts + 1, status PROCESSING, a lease until `now + lease` and a
        fresh claim token.

        Args:
            limit: Maximum entries to claim
            now: Current time
            lease: Visibility timeout for the claimed entries

        Returns:
            Claimed entries, post-increment, oldest arrival first
        """
        pass

    @abstractmethod
    async def mark_done(
        self,
        entry_id: str,
        at: dt.datetime,
        claim_token: Optional[str] = None,
    ) -> bool:
        """
        Mark an entry as successfully handled.

        Args:
            entry_id: Entry id
            at: Completion time, stored as processed_at
            claim_token: When given, only the matching claim may write

        Returns:
            True if the entry changed, False if it was already terminal or
            the claim was superseded
        """
        pass

    @abstractmethod
    async def mark_outcome(
        self,
        entry_id: str,
        status: QueueStatus,
        last_error: Optional[str],
        processed_at: Optional[dt.datetime] = None,
        next_attempt_at: Optional[dt.datetime] = None,
        claim_token: Optional[str] = None,
    ) -> bool:
        """
        Record a failed attempt.

        Args:
            entry_id: Entry id
            status: RETRY (with next_attempt_at) or FAILED (with processed_at)
            last_error: Sanitized failure reason
            processed_at: Set for FAILED
            next_attempt_at: Set for RETRY
            claim_token: When given, only the matching claim may write

        Returns:
            True if the entry changed
        """
        pass

    @abstractmethod
    async def depth(self) -> int:
        """Number of entries not yet in a terminal state."""
        pass

    @abstractmethod
    async def get(self, entry_id: str) -> Optional[T]:
        """Read a single entry, or None if unknown."""
        pass

    @abstractmethod
    async def failed(self, limit: int = 100) -> list[T]:
        """
        Terminal FAILED entries kept for operator inspection.

        Args:
            limit: Maximum entries to return

        Returns:
            Most recently failed entries first
        """
        pass

    def _check_outcome(
        self,
        status: QueueStatus,
        processed_at: Optional[dt.datetime],
        next_attempt_at: Optional[dt.datetime],
    ) -> None:
        if status == QueueStatus.RETRY:
            if next_attempt_at is None:
                raise ValueError("RETRY outcome requires next_attempt_at")
        elif status == QueueStatus.FAILED:
            if processed_at is None:
                raise ValueError("FAILED outcome requires processed_at")
        else:
            raise ValueError(f"mark_outcome accepts RETRY or FAILED, got {status}")
