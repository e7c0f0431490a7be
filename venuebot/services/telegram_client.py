"""
Telegram Bot API client.
Sends Bot API method calls and long-polls for updates.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from loguru import logger

from venuebot.config import settings
from venuebot.utils.log_sanitizer import sanitize_for_log

RATE_LIMITED_ERROR_CODE = 429


@dataclass(frozen=True)
class CallSuccess:
    """The Bot API answered ok=true."""
    result: Any = None


@dataclass(frozen=True)
class CallFailure:
    """
    The Bot API answered ok=false, or with something that is not a Bot API
    envelope at all.

    Attributes:
        error_code: Bot API error code (mirrors HTTP status); None if unknown
        description: Human-readable reason from the API
        retry_after: Seconds the API asked us to wait (flood control)
    """
    error_code: Optional[int] = None
    description: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def is_retryable(self) -> bool:
        if self.error_code is None:
            return True
        if self.error_code == RATE_LIMITED_ERROR_CODE:
            return True
        return self.error_code >= 500


CallResult = Union[CallSuccess, CallFailure]


class TelegramApiError(Exception):
    """Raised by helpers that cannot express a failure as a CallResult."""


class TelegramApiClient:
    """
    Thin async client for the Telegram Bot API.

    This client is responsible for:
    - Posting method calls as JSON and decoding the API envelope
    - Long polling getUpdates

    It never retries; retry policy belongs to the outbox worker.
    Transport errors (timeouts, connection resets) propagate as
    httpx.HTTPError.
    """

    def __init__(
        self,
        token: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize client.

        Args:
            token: Bot token
            client: Shared httpx client; one is created when omitted
            base_url: API root (defaults to settings.telegram_api_base_url)
            timeout_seconds: Request timeout for an owned client
        """
        if not token:
            raise ValueError("Telegram bot token is required")

        root = (base_url or settings.telegram_api_base_url).rstrip("/")
        self._method_url = f"{root}/bot{token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds or settings.telegram_request_timeout_seconds
        )

    async def call_method(self, method: str, payload: Any) -> CallResult:
        """
        Invoke a Bot API method.

        Args:
            method: Method name, e.g. "sendMessage"
            payload: JSON-serializable body

        Returns:
            CallSuccess or CallFailure

        Raises:
            httpx.HTTPError: On transport failure
        """
        response = await self._client.post(f"{self._method_url}/{method}", json=payload)
        return self._parse_envelope(response)

    async def get_updates(self, offset: Optional[int], timeout_seconds: int) -> list[dict]:
        """
        Long-poll for updates.

        Args:
            offset: First update id to return (previous max + 1)
            timeout_seconds: Server-side long poll timeout

        Returns:
            Raw update objects

        Raises:
            TelegramApiError: If the API answered ok=false
            httpx.HTTPError: On transport failure
        """
        params: dict[str, Any] = {"timeout": timeout_seconds}
        if offset is not None:
            params["offset"] = offset

        response = await self._client.get(
            f"{self._method_url}/getUpdates",
            params=params,
            timeout=timeout_seconds + 10,
        )
        result = self._parse_envelope(response)
        if isinstance(result, CallFailure):
            safe_description = sanitize_for_log(result.description)
            logger.warning(f"Telegram getUpdates failed: {safe_description}")
            raise TelegramApiError(safe_description)

        return list(result.result or [])

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _parse_envelope(self, response: httpx.Response) -> CallResult:
        try:
            body = response.json()
        except ValueError:
            return CallFailure(
                error_code=response.status_code,
                description=f"Non-JSON response (HTTP {response.status_code})",
            )

        if not isinstance(body, dict) or "ok" not in body:
            return CallFailure(
                error_code=response.status_code,
                description=f"Unexpected response shape (HTTP {response.status_code})",
            )

        if body.get("ok"):
            return CallSuccess(result=body.get("result"))

        parameters = body.get("parameters") or {}
        return CallFailure(
            error_code=body.get("error_code"),
            description=body.get("description"),
            retry_after=parameters.get("retry_after"),
        )
