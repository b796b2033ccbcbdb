"""
Event bus for real-time fan-out of ride and inbox documents.

Every committed write publishes the *full* document on a channel; listeners
replace their local view with whatever they receive.  Two backends:

* ``InMemoryEventBus`` -- single process.  ``publish`` awaits each handler
  in subscription order, so a channel is delivered in publish order.
* ``RedisEventBus``   -- multi-process, via Redis pub/sub.  One reader task
  per subscription keeps per-channel order.

Handler errors are logged and swallowed: a broken listener must never fail
the write that triggered it.

Channels
--------
* ``ride:{id}``     -- one ride's document
* ``rides``         -- every ride write (feeds the pending-ride live query)
* ``inbox:{user}``  -- notifications appended to a user's inbox
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Protocol, Union

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], Awaitable[None]]

RIDES_CHANNEL = "rides"


def ride_channel(ride_id: str) -> str:
    return f"ride:{ride_id}"


def inbox_channel(user_id: str) -> str:
    return f"inbox:{user_id}"


async def call_handler(handler: Callable[..., Any], *args: Any) -> None:
    """Invoke a sync or async callback."""
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class EventBus(Protocol):
    async def publish(self, channel: str, document: dict) -> None: ...

    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe: ...

    async def close(self) -> None: ...


# ── In-process ────────────────────────────────────────────────────────


class InMemoryEventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    async def publish(self, channel: str, document: dict) -> None:
        for handler in list(self._handlers.get(channel, ())):
            try:
                await call_handler(handler, document)
            except Exception:
                logger.exception("Listener on %s failed", channel)

    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        self._handlers[channel].append(handler)

        async def unsubscribe() -> None:
            handlers = self._handlers.get(channel)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[channel]

        return unsubscribe

    def listener_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))

    async def close(self) -> None:
        self._handlers.clear()


# ── Redis pub/sub ─────────────────────────────────────────────────────


class RedisEventBus:
    def __init__(self, client: aioredis.Redis):
        self.redis = client
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_url(cls, url: str) -> "RedisEventBus":
        """Bus over a pooled client; payloads are JSON text, so responses are decoded."""
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    async def publish(self, channel: str, document: dict) -> None:
        await self.redis.publish(channel, json.dumps(document))

    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel)
        task = asyncio.create_task(self._reader(channel, pubsub, handler))
        self._tasks.add(task)

        async def unsubscribe() -> None:
            if task not in self._tasks:
                return
            self._tasks.discard(task)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Reader for %s ended with an error", channel)
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

        return unsubscribe

    async def _reader(self, channel: str, pubsub, handler: Handler) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                document = json.loads(message["data"])
                await call_handler(handler, document)
            except Exception:
                logger.exception("Listener on %s failed", channel)

    async def close(self) -> None:
        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.redis.aclose()
