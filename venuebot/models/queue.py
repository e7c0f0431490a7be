"""
Queue Entry Models

Rows of the inbound update queue and the outbound message queue.
Both share one state machine:

    PENDING -> PROCESSING -> PROCESSED | SENT
                          -> RETRY -> PROCESSING ...
                          -> FAILED

While an entry is PROCESSING, next_attempt_at holds its lease expiry.
Once that passes the entry is claimable again, which is how work held by a
crashed worker is recovered.
"""
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Type
from pydantic import Field

from venuebot.models.base import MongoBaseModel, UtcDatetime, utc_now


class QueueStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    RETRY = "RETRY"
    PROCESSED = "PROCESSED"
    SENT = "SENT"
    FAILED = "FAILED"


CLAIMABLE_STATUSES = (QueueStatus.PENDING, QueueStatus.RETRY, QueueStatus.PROCESSING)
TERMINAL_STATUSES = (QueueStatus.PROCESSED, QueueStatus.SENT, QueueStatus.FAILED)


class QueueEntry(MongoBaseModel):
    payload_json: str
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    processed_at: Optional[UtcDatetime] = None
    next_attempt_at: Optional[UtcDatetime] = None
    claim_token: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class InboundUpdate(QueueEntry):
    """A raw Telegram update waiting for the bot router."""
    update_id: int
    received_at: UtcDatetime = Field(default_factory=utc_now)


class OutboxMessage(QueueEntry):
    """A Bot API call waiting to be sent."""
    chat_id: int
    method: str
    created_at: UtcDatetime = Field(default_factory=utc_now)


@dataclass(frozen=True)
class QueueLayout:
    """
    What distinguishes one queue from the other.

    Attributes:
        name: Short queue name used in logs and metrics
        collection: MongoDB collection name
        model: Entry model class
        done_status: Terminal success status
        arrival_field: Field that orders claims (oldest first)
        dedup_field: Field that must be unique, if any
    """
    name: str
    collection: str
    model: Type[QueueEntry]
    done_status: QueueStatus
    arrival_field: str
    dedup_field: Optional[str] = None


INBOUND_LAYOUT = QueueLayout(
    name="inbound",
    collection="telegram_inbound_updates",
    model=InboundUpdate,
    done_status=QueueStatus.PROCESSED,
    arrival_field="received_at",
    dedup_field="update_id",
)

OUTBOX_LAYOUT = QueueLayout(
    name="outbox",
    collection="telegram_outbox",
    model=OutboxMessage,
    done_status=QueueStatus.SENT,
    arrival_field="created_at",
)
