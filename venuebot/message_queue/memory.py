"""
In-Memory Queue Store

Simple in-memory store for tests and single-process development.
Uses an asyncio lock so claims from concurrent tasks stay exclusive.
"""

import asyncio
import datetime as dt
import itertools
import uuid
from typing import Optional

from venuebot.message_queue.base import QueueStore, T
from venuebot.models.queue import (
    CLAIMABLE_STATUSES,
    INBOUND_LAYOUT,
    OUTBOX_LAYOUT,
    QueueLayout,
    QueueStatus,
)
from venuebot.utils.log_sanitizer import sanitize_error


class InMemoryQueueStore(QueueStore[T]):
    """
    In-memory queue store implementation.

    Stores entries in a dict keyed by id - data is lost on restart.

    Suitable for:
    - Testing
    - Local development without MongoDB

    Not suitable for:
    - Multi-instance deployments
    - Anything that must survive a restart
    """

    def __init__(self, layout: QueueLayout):
        super().__init__(layout)
        self._entries: dict[str, T] = {}
        self._dedup_keys: set = set()
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    @classmethod
    def inbound(cls) -> "InMemoryQueueStore":
        return cls(INBOUND_LAYOUT)

    @classmethod
    def outbox(cls) -> "InMemoryQueueStore":
        return cls(OUTBOX_LAYOUT)

    async def enqueue(self, entry: T) -> Optional[T]:
        async with self._lock:
            dedup_field = self.layout.dedup_field
            if dedup_field is not None:
                key = getattr(entry, dedup_field)
                if key in self._dedup_keys:
                    return None
                self._dedup_keys.add(key)

            stored = entry.model_copy(
                update={
                    "id": f"{next(self._ids):024x}",
                    "status": QueueStatus.PENDING,
                    "attempts": 0,
                    "last_error": None,
                    "processed_at": None,
                    "next_attempt_at": None,
                    "claim_token": None,
                }
            )
            self._entries[stored.id] = stored
            return stored.model_copy()

    async def claim_batch(self, limit: int, now: dt.datetime, lease: dt.timedelta) -> list[T]:
        if limit <= 0:
            return []

        async with self._lock:
            candidates = [
                entry for entry in self._entries.values()
                if entry.status in CLAIMABLE_STATUSES
                and (entry.next_attempt_at is None or entry.next_attempt_at <= now)
            ]
            candidates.sort(key=lambda e: (getattr(e, self.layout.arrival_field), e.id))

            claimed = []
            for entry in candidates[:limit]:
                entry.attempts += 1
                entry.status = QueueStatus.PROCESSING
                entry.next_attempt_at = now + lease
                entry.last_error = None
                entry.claim_token = uuid.uuid4().hex
                claimed.append(entry.model_copy())

            return claimed

    async def mark_done(
        self,
        entry_id: str,
        at: dt.datetime,
        claim_token: Optional[str] = None,
    ) -> bool:
        async with self._lock:
            entry = self._writable(entry_id, claim_token)
            if entry is None:
                return False

            entry.status = self.layout.done_status
            entry.processed_at = at
            entry.next_attempt_at = None
            entry.last_error = None
            return True

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

        async with self._lock:
            entry = self._writable(entry_id, claim_token)
            if entry is None:
                return False

            entry.status = status
            entry.last_error = sanitize_error(last_error)
            entry.processed_at = processed_at
            entry.next_attempt_at = next_attempt_at
            return True

    async def depth(self) -> int:
        async with self._lock:
            return sum(1 for entry in self._entries.values() if not entry.is_terminal)

    async def get(self, entry_id: str) -> Optional[T]:
        async with self._lock:
            entry = self._entries.get(entry_id)
            return entry.model_copy() if entry else None

    async def failed(self, limit: int = 100) -> list[T]:
        async with self._lock:
            entries = [e for e in self._entries.values() if e.status == QueueStatus.FAILED]
            entries.sort(key=lambda e: e.processed_at, reverse=True)
            return [e.model_copy() for e in entries[:limit]]

    def _writable(self, entry_id: str, claim_token: Optional[str]) -> Optional[T]:
        entry = self._entries.get(entry_id)
        if entry is None or entry.is_terminal:
            return None
        if claim_token is not None and entry.claim_token != claim_token:
            return None
        return entry
