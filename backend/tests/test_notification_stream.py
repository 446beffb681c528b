"""
Тесты SSE-потока /notifications/stream: события, keepalive и отписка от фида.
"""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from nova_funded.api.routes import notifications as notifications_routes
from nova_funded.api.routes.notifications import stream_notifications


class FakeRequest:
    """is_disconnected() отдаёт заданную последовательность, потом True."""

    def __init__(self, checks: list[bool]):
        self._checks = iter(checks)

    async def is_disconnected(self) -> bool:
        return next(self._checks, True)


class FakeFeed:
    def __init__(self):
        self.handlers = {}
        self.subscription = MagicMock()
        self.subscription.unsubscribe = AsyncMock()

    async def subscribe(self, user_id, on_event):
        self.handlers[user_id] = on_event
        return self.subscription


@pytest.fixture
def trader():
    return SimpleNamespace(id=uuid.uuid4())


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


async def test_stream_forwards_events_and_unsubscribes(trader, feed):
    response = await stream_notifications(FakeRequest([False]), trader, feed)
    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"

    feed.handlers[trader.id]({"title": "Payment Update"})
    chunks = [chunk async for chunk in response.body_iterator]

    assert chunks == ['data: {"title": "Payment Update"}\n\n']
    feed.subscription.unsubscribe.assert_awaited_once()


async def test_stream_sends_keepalive_when_idle(trader, feed, monkeypatch):
    monkeypatch.setattr(notifications_routes, "KEEPALIVE_SECONDS", 0.01)
    response = await stream_notifications(FakeRequest([False]), trader, feed)

    chunks = [chunk async for chunk in response.body_iterator]

    assert chunks == [": keepalive\n\n"]
    feed.subscription.unsubscribe.assert_awaited_once()


async def test_closing_stream_early_unsubscribes(trader, feed):
    response = await stream_notifications(FakeRequest([False] * 10), trader, feed)
    feed.handlers[trader.id]({"title": "first"})
    feed.handlers[trader.id]({"title": "second"})

    body = response.body_iterator
    assert await body.__anext__() == 'data: {"title": "first"}\n\n'
    await body.aclose()

    feed.subscription.unsubscribe.assert_awaited_once()


async def test_disconnected_client_gets_nothing(trader, feed):
    response = await stream_notifications(FakeRequest([True]), trader, feed)
    feed.handlers[trader.id]({"title": "late"})

    assert [chunk async for chunk in response.body_iterator] == []
    feed.subscription.unsubscribe.assert_awaited_once()
