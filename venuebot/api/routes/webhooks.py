"""
Webhook Endpoints

Telegram webhook handler. Updates are made durable and acknowledged; the
inbound worker processes them in the background.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger

from venuebot.api.dependencies import get_ingestor, validate_telegram_secret_token
from venuebot.config import settings
from venuebot.errors import MalformedUpdateError
from venuebot.services.ingestion import IngestOutcome, UpdateIngestor
from venuebot.utils.log_sanitizer import describe_exception, sanitize_for_log
from venuebot.utils.observability import log_exception_debug

router = APIRouter(tags=["Webhooks"])


@router.post(settings.telegram_webhook_path, dependencies=[Depends(validate_telegram_secret_token)])
async def telegram_webhook(request: Request, ingestor: UpdateIngestor = Depends(get_ingestor)):
    """
    Telegram webhook endpoint.

    Flow:
    1. Check the secret token header
    2. Record the update id with the idempotency guard
    3. Insert the raw update into the inbound queue
    4. Return 200 so Telegram stops redelivering

    Returns:
        200 for new and duplicate updates, 400 for a malformed body,
        503 when storage is unavailable (Telegram retries later)
    """
    body = await request.body()

    try:
        outcome = await ingestor.ingest(body)
    except MalformedUpdateError as e:
        logger.warning(f"Webhook rejected malformed update: {sanitize_for_log(str(e))}")
        return JSONResponse(status_code=400, content={"status": "error", "error": "Malformed update"})
    except Exception as e:
        logger.warning(f"Webhook enqueue failed: {describe_exception(e)}")
        log_exception_debug(e, "Webhook enqueue exception")
        return JSONResponse(status_code=500, content={"status": "error", "error": "Internal error"})

    if outcome is IngestOutcome.UNAVAILABLE:
        return JSONResponse(status_code=503, content={"status": "unavailable"})

    return {"status": outcome.value}
