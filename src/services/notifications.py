"""
Notification side-channel.

``notify`` appends to the recipient's inbox, publishes the new record on the
recipient's inbox channel, and hands a push message to the push worker when
the recipient has a device token.  Every step is best-effort: failures are
logged and swallowed so the ride transition that triggered the notice is
never affected.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.enums import NotificationKind
from src.infrastructure.events import EventBus, inbox_channel
from src.infrastructure.models import NotificationModel
from src.infrastructure.push import ExpoPushClient, PushMessage
from src.infrastructure.repositories import NotificationRepository, UserRepository
from src.workers.push_sender import PushWorker

logger = logging.getLogger(__name__)


def notification_document(model: NotificationModel) -> dict:
    return {
        "id": model.id,
        "user_id": model.user_id,
        "kind": NotificationKind(model.kind).value,
        "title": model.title,
        "body": model.body,
        "ride_id": model.ride_id,
        "read": model.read,
        "created_at": model.created_at.isoformat() if model.created_at else None,
    }


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: EventBus,
        push_worker: Optional[PushWorker] = None,
        push_client: Optional[ExpoPushClient] = None,
    ):
        self._session_factory = session_factory
        self.bus = bus
        self.push_worker = push_worker
        self.push_client = push_client

    async def notify(
        self,
        recipient_id: str,
        kind: NotificationKind,
        title: str,
        body: str,
        ride_id: Optional[str] = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    model = await NotificationRepository(session).add(
                        user_id=recipient_id,
                        kind=kind,
                        title=title,
                        body=body,
                        ride_id=ride_id,
                        now=datetime.now(timezone.utc),
                    )
                    recipient = await UserRepository(session).get_by_id(recipient_id)
                    token = recipient.push_token if recipient else None
                    document = notification_document(model)
        except Exception:
            logger.exception("Could not store %s notification for %s", kind.value, recipient_id)
            return

        try:
            await self.bus.publish(inbox_channel(recipient_id), document)
        except Exception:
            logger.exception("Could not publish inbox update for %s", recipient_id)

        if token:
            message = PushMessage(
                token=token,
                title=title,
                body=body,
                data={"kind": kind.value, "ride_id": ride_id},
            )
            await self._push(message)

    async def _push(self, message: PushMessage) -> None:
        if self.push_worker is not None and self.push_worker.running:
            self.push_worker.submit(message)
            return
        if self.push_client is None:
            return
        try:
            await self.push_client.send(message)
        except Exception:
            logger.exception("Push delivery to %s failed", message.token)
