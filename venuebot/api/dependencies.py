"""
FastAPI Dependencies

Reusable dependencies for request validation and app-state access.
"""
import hmac

from fastapi import Header, HTTPException, Request, status
from typing import Optional
from loguru import logger

from venuebot.config import settings
from venuebot.services.ingestion import UpdateIngestor

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


async def validate_telegram_secret_token(
    x_telegram_bot_api_secret_token: Optional[str] = Header(None)
) -> None:
    """
    Dependency to validate the Telegram webhook secret token.

    Telegram echoes the secret_token given to setWebhook in the
    X-Telegram-Bot-Api-Secret-Token header. The comparison is constant-time.

    Raises:
        HTTPException: 403 if the header is missing or does not match

    Note:
        Skipped when TELEGRAM_WEBHOOK_SECRET_TOKEN is not set
    """
    expected = settings.telegram_webhook_secret_token
    if not expected:
        return

    provided = x_telegram_bot_api_secret_token or ""
    if not hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8")):
        logger.warning(
            "Rejected Telegram webhook call with a bad secret token",
            extra={"header_present": x_telegram_bot_api_secret_token is not None}
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token")


def get_ingestor(request: Request) -> UpdateIngestor:
    """
    Ingestor from app state.

    Raises:
        HTTPException: 503 while the pipeline is not initialized
    """
    ingestor = getattr(request.app.state, "ingestor", None)
    if ingestor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Update pipeline not initialized"
        )
    return ingestor
