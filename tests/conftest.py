import datetime as dt

import pytest
from mongomock_motor import AsyncMongoMockClient

from venuebot.utils.metrics import metrics


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start: dt.datetime):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> dt.datetime:
        self.now += dt.timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    """Clock pinned to a fixed UTC instant."""
    return FakeClock(dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.UTC))


@pytest.fixture
def mongo_db():
    """Fresh in-process MongoDB database."""
    return AsyncMongoMockClient()["venuebot_test"]


@pytest.fixture(autouse=True)
def reset_metrics():
    """Every test starts with zeroed metrics."""
    metrics.reset()
    yield
