"""Services package."""
from venuebot.services.telegram_client import (
    CallFailure,
    CallResult,
    CallSuccess,
    TelegramApiClient,
    TelegramApiError,
)
from venuebot.services.outbox_enqueuer import OutboxEnqueuer
from venuebot.services.ingestion import IngestOutcome, UpdateIngestor
from venuebot.services.poller import UpdatePoller

__all__ = [
    "CallFailure",
    "CallResult",
    "CallSuccess",
    "TelegramApiClient",
    "TelegramApiError",
    "OutboxEnqueuer",
    "IngestOutcome",
    "UpdateIngestor",
    "UpdatePoller",
]
