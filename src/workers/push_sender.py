"""
Background Push Worker
======================

Drains a bounded queue of ``PushMessage`` objects and hands each to the
push relay.  Lifecycle operations only ever ``submit`` -- a slow or failing
relay cannot delay or fail a ride transition.

Delivery policy
---------------
* Best-effort, at most once: a failed send is logged and dropped.
* A full queue drops the new message (logged) rather than blocking.
* ``stop`` drains nothing; messages still queued at shutdown are lost, the
  inbox record already exists.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.infrastructure.push import ExpoPushClient, PushMessage

logger = logging.getLogger(__name__)


class PushWorker:
    def __init__(self, client: ExpoPushClient, max_queue: int = 1000):
        self.client = client
        self.queue: asyncio.Queue[PushMessage] = asyncio.Queue(maxsize=max_queue)
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ── Public API ────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, message: PushMessage) -> bool:
        """Queue *message* for delivery.  Returns False if it was dropped."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Push queue full -- dropping message for %s", message.token)
            return False
        return True

    async def start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Push worker started (queue=%d)", self.queue.maxsize)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Push worker stopped")

    # ── Internals ─────────────────────────────────────────────────────

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            message = await self.queue.get()
            try:
                await self.deliver(message)
            finally:
                self.queue.task_done()

    async def deliver(self, message: PushMessage) -> None:
        try:
            await self.client.send(message)
        except Exception:
            logger.exception("Push delivery to %s failed", message.token)
