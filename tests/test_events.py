"""Event bus tests (in-process bus, and Redis pub/sub with a mocked client)."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.infrastructure.events import InMemoryEventBus, RedisEventBus


class TestInMemoryEventBus:
    @pytest.mark.asyncio
    async def test_handlers_called_in_subscription_order(self):
        bus = InMemoryEventBus()
        calls = []
        await bus.subscribe("ride:1", lambda doc: calls.append(("sync", doc["v"])))

        async def async_handler(doc):
            calls.append(("async", doc["v"]))

        await bus.subscribe("ride:1", async_handler)
        await bus.publish("ride:1", {"v": 1})
        await bus.publish("ride:2", {"v": 2})

        assert calls == [("sync", 1), ("async", 1)]

    @pytest.mark.asyncio
    async def test_broken_handler_does_not_block_others(self):
        bus = InMemoryEventBus()
        received = []

        def broken(doc):
            raise ValueError("boom")

        await bus.subscribe("rides", broken)
        await bus.subscribe("rides", received.append)
        await bus.publish("rides", {"id": "a"})

        assert received == [{"id": "a"}]


class _FakePubSub:
    """Stands in for ``redis.asyncio.client.PubSub``."""

    def __init__(self):
        self.messages: asyncio.Queue = asyncio.Queue()
        self.subscribe = AsyncMock()
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        while True:
            yield await self.messages.get()


class TestRedisEventBus:
    @pytest.mark.asyncio
    async def test_publish_serialises_document(self):
        client = MagicMock()
        client.publish = AsyncMock(return_value=1)
        bus = RedisEventBus(client)

        await bus.publish("ride:1", {"id": "1", "status": "accepted"})

        channel, payload = client.publish.await_args.args
        assert channel == "ride:1"
        assert json.loads(payload) == {"id": "1", "status": "accepted"}

    @pytest.mark.asyncio
    async def test_messages_reach_handler_until_unsubscribed(self):
        pubsub = _FakePubSub()
        client = MagicMock()
        client.pubsub.return_value = pubsub
        bus = RedisEventBus(client)
        received = []
        delivered = asyncio.Event()

        def handler(doc):
            received.append(doc)
            delivered.set()

        unsubscribe = await bus.subscribe("inbox:u1", handler)
        pubsub.subscribe.assert_awaited_once_with("inbox:u1")

        await pubsub.messages.put({"type": "message", "data": json.dumps({"n": 1})})
        await asyncio.wait_for(delivered.wait(), timeout=1)

        await unsubscribe()
        await unsubscribe()

        assert received == [{"n": 1}]
        pubsub.unsubscribe.assert_awaited_once_with("inbox:u1")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_payload_is_skipped(self):
        pubsub = _FakePubSub()
        client = MagicMock()
        client.pubsub.return_value = pubsub
        bus = RedisEventBus(client)
        received = []
        delivered = asyncio.Event()

        def handler(doc):
            received.append(doc)
            delivered.set()

        unsubscribe = await bus.subscribe("rides", handler)
        await pubsub.messages.put({"type": "message", "data": "not json"})
        await pubsub.messages.put({"type": "message", "data": json.dumps({"ok": True})})
        await asyncio.wait_for(delivered.wait(), timeout=1)
        await unsubscribe()

        assert received == [{"ok": True}]

    @pytest.mark.asyncio
    async def test_close_cancels_readers_and_closes_client(self):
        pubsub = _FakePubSub()
        client = MagicMock()
        client.pubsub.return_value = pubsub
        client.aclose = AsyncMock()
        bus = RedisEventBus(client)

        await bus.subscribe("rides", lambda doc: None)
        await bus.close()

        client.aclose.assert_awaited_once()
