"""
Outbox enqueuer.
Write-only facade for scheduling Bot API calls through the outbound queue.
"""
import json
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel

from venuebot.message_queue.base import QueueStore
from venuebot.models.queue import OutboxMessage
from venuebot.models.telegram import ReplyMarkup, SendMessagePayload


class OutboxEnqueuer:
    """
    Schedules outbound sends.

    Callers never talk to the Bot API directly; the outbox worker delivers
    whatever is enqueued here. Storage failures propagate as
    StorageUnavailableError.
    """

    def __init__(self, store: QueueStore[OutboxMessage]):
        self.store = store

    async def enqueue_send(self, chat_id: int, method: str, payload: Any) -> OutboxMessage:
        """
        Queue one Bot API call.

        Args:
            chat_id: Destination chat (used for pacing)
            method: Bot API method name
            payload: Request body; a pydantic model or JSON-serializable value

        Returns:
            The stored outbox entry
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", exclude_none=True)

        entry = await self.store.enqueue(
            OutboxMessage(chat_id=chat_id, method=method, payload_json=json.dumps(payload))
        )

        logger.debug(
            f"Queued {method} for chat {chat_id}",
            extra={"chat_id": chat_id, "method": method, "entry_id": entry.id}
        )
        return entry

    async def enqueue_send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> OutboxMessage:
        payload = SendMessagePayload.build(chat_id, text, reply_markup)
        return await self.enqueue_send(chat_id, "sendMessage", payload)

    async def enqueue_answer_callback_query(self, chat_id: int, callback_query_id: str) -> OutboxMessage:
        return await self.enqueue_send(
            chat_id, "answerCallbackQuery", {"callback_query_id": callback_query_id}
        )
