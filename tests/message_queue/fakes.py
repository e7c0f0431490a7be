"""Test doubles shared by the worker tests."""
from venuebot.utils.rate_limiter import SendRateLimiter


class FakeApiClient:
    """Bot API client returning scripted results; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def call_method(self, method, payload):
        self.calls.append((method, payload))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingRateLimiter(SendRateLimiter):
    """Grants every permit at once and remembers who asked."""

    def __init__(self):
        self.permits = []

    async def await_permit(self, chat_id: int) -> None:
        self.permits.append(chat_id)


class RecordingRouter:
    """Update router that records updates and can fail on demand."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.updates = []

    async def process(self, update) -> None:
        self.updates.append(update)
        if self.error is not None:
            raise self.error
