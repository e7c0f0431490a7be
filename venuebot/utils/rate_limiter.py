"""
Per-Chat Send Pacing

Keeps consecutive Bot API sends to the same chat at least a minimum
interval apart. State is process-local: several worker processes each keep
their own view, so the effective per-chat rate can be exceeded by a factor
of the instance count. Moving the slot map into MongoDB (a lease row per
chat, claimed like queue entries) would lift that limit.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict
from loguru import logger

from venuebot.utils.metrics import metrics


class SendRateLimiter(ABC):
    """Abstract send rate limiter interface."""

    @abstractmethod
    async def await_permit(self, chat_id: int) -> None:
        """
        Suspend until a send to chat_id would respect the minimum interval.

        Args:
            chat_id: Destination chat
        """
        pass

    def forget_idle(self) -> int:
        """Drop pacing state for chats with no pending slot."""
        return 0


class InMemoryRateLimiter(SendRateLimiter):
    """
    In-memory per-chat rate limiter.

    Each caller reserves the chat's next free slot under a single lock and
    sleeps outside it, so senders to one chat are strictly serialized in
    time while other chats are never held up.
    """

    def __init__(
        self,
        min_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize in-memory rate limiter.

        Args:
            min_interval_seconds: Minimum gap between sends to one chat
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait for a reserved slot
        """
        self.min_interval_seconds = max(0.0, min_interval_seconds)
        self._clock = clock
        self._sleep = sleep

        # chat_id -> earliest time the next send may start
        self._next_slot: Dict[int, float] = {}
        self._lock = asyncio.Lock()

    async def await_permit(self, chat_id: int) -> None:
        async with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(chat_id, now))
            self._next_slot[chat_id] = slot + self.min_interval_seconds
            wait_seconds = slot - now

        if wait_seconds > 0:
            metrics.rate_limit_waits.inc()
            logger.debug(
                f"Pacing send to chat {chat_id} for {wait_seconds:.3f}s",
                extra={"chat_id": chat_id, "wait_seconds": round(wait_seconds, 3)}
            )
            await self._sleep(wait_seconds)

    def forget_idle(self) -> int:
        """
        Drop chats whose reserved slot is already in the past.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        idle = [chat_id for chat_id, slot in self._next_slot.items() if slot <= now]
        for chat_id in idle:
            del self._next_slot[chat_id]
        return len(idle)
