"""Explicit caller identity, passed into every lifecycle operation."""

from __future__ import annotations

from dataclasses import dataclass

from src.domain.enums import ActorRole


@dataclass(frozen=True)
class SessionContext:
    user_id: str
    role: ActorRole

    @property
    def is_rider(self) -> bool:
        return self.role is ActorRole.RIDER

    @property
    def is_passenger(self) -> bool:
        return self.role is ActorRole.PASSENGER
