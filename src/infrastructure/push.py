"""
Expo push relay client.

Device tokens are Expo push tokens registered by the mobile clients.  A
message is a single POST to the Expo push endpoint; Expo answers 200 even
for per-ticket failures, so the ticket status is checked as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """Raised when the relay rejects a message."""


@dataclass(frozen=True)
class PushMessage:
    token: str
    title: str
    body: str
    data: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "to": self.token,
            "title": self.title,
            "body": self.body,
            "sound": "default",
            "data": self.data,
        }


class ExpoPushClient:
    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def send(self, message: PushMessage) -> None:
        response = await self._client.post(
            self.url,
            json=message.to_payload(),
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        ticket = response.json().get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if ticket.get("status") == "error":
            raise PushDeliveryError(ticket.get("message", "push rejected"))
        logger.debug("Push delivered to %s", message.token)

    async def aclose(self) -> None:
        await self._client.aclose()
