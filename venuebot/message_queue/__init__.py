"""
Message Queue System

Durable queues for the Telegram pipeline:
- Abstract claim/lease store interface with MongoDB and in-memory backends
- Inbound worker feeding updates to the bot router
- Outbox worker sending Bot API calls with per-chat pacing
- Bounded exponential backoff shared by both
"""

from venuebot.message_queue.backoff import compute_backoff, retry_delay
from venuebot.message_queue.base import QueueStore
from venuebot.message_queue.inbound_worker import InboundUpdateWorker, UpdateRouter
from venuebot.message_queue.memory import InMemoryQueueStore
from venuebot.message_queue.mongo import MongoQueueStore
from venuebot.message_queue.outbox_worker import OutboxWorker
from venuebot.message_queue.worker import QueueWorker

__all__ = [
    "compute_backoff",
    "retry_delay",
    "QueueStore",
    "InMemoryQueueStore",
    "MongoQueueStore",
    "QueueWorker",
    "InboundUpdateWorker",
    "UpdateRouter",
    "OutboxWorker",
]
