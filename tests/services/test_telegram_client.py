"""
Tests for TelegramApiClient.
"""
import json

import httpx
import pytest

from venuebot.services.telegram_client import (
    CallFailure,
    CallSuccess,
    TelegramApiClient,
    TelegramApiError,
)

TOKEN = "123456:TEST-token_value"


def make_client(handler) -> TelegramApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramApiClient(TOKEN, client=http, base_url="https://api.telegram.test")


class TestCallMethod:
    """Tests for Bot API method calls."""

    async def test_success_envelope(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 5}})

        client = make_client(handler)

        result = await client.call_method("sendMessage", {"chat_id": 1, "text": "hi"})

        assert result == CallSuccess(result={"message_id": 5})
        assert seen["url"] == f"https://api.telegram.test/bot{TOKEN}/sendMessage"
        assert seen["body"] == {"chat_id": 1, "text": "hi"}

    async def test_rate_limited_envelope(self):
        def handler(request):
            return httpx.Response(
                429,
                json={
                    "ok": False,
                    "error_code": 429,
                    "description": "Too Many Requests: retry after 7",
                    "parameters": {"retry_after": 7},
                },
            )

        result = await make_client(handler).call_method("sendMessage", {})

        assert result == CallFailure(error_code=429, description="Too Many Requests: retry after 7", retry_after=7)
        assert result.is_retryable

    async def test_bad_request_is_not_retryable(self):
        def handler(request):
            return httpx.Response(400, json={"ok": False, "error_code": 400, "description": "Bad Request"})

        result = await make_client(handler).call_method("sendMessage", {})

        assert isinstance(result, CallFailure)
        assert result.retry_after is None
        assert not result.is_retryable

    async def test_non_json_response(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        result = await make_client(handler).call_method("sendMessage", {})

        assert isinstance(result, CallFailure)
        assert result.error_code == 502
        assert result.is_retryable

    async def test_transport_error_propagates(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.HTTPError):
            await make_client(handler).call_method("sendMessage", {})


class TestGetUpdates:
    """Tests for long polling."""

    async def test_returns_updates_with_offset(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"ok": True, "result": [{"update_id": 10}, {"update_id": 11}]})

        updates = await make_client(handler).get_updates(offset=10, timeout_seconds=25)

        assert [u["update_id"] for u in updates] == [10, 11]
        assert seen["params"] == {"timeout": "25", "offset": "10"}

    async def test_failure_raises(self):
        def handler(request):
            return httpx.Response(409, json={"ok": False, "error_code": 409, "description": "Conflict: webhook is active"})

        with pytest.raises(TelegramApiError):
            await make_client(handler).get_updates(offset=None, timeout_seconds=1)


class TestFailureClassification:
    @pytest.mark.parametrize(
        "error_code,retryable",
        [(None, True), (429, True), (500, True), (503, True), (400, False), (403, False), (404, False)],
    )
    def test_is_retryable(self, error_code, retryable):
        assert CallFailure(error_code=error_code).is_retryable is retryable

    def test_token_required(self):
        with pytest.raises(ValueError):
            TelegramApiClient("")
