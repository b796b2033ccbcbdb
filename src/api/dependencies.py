"""FastAPI dependency injection helpers."""

from typing import Mapping, Optional

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import ActorRole
from src.services.lifecycle import RideLifecycleController
from src.services.session import SessionContext


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_controller(request: Request) -> RideLifecycleController:
    return request.app.state.controller


def parse_session(user_id: Optional[str], role: Optional[str]) -> Optional[SessionContext]:
    if not user_id or not role:
        return None
    try:
        return SessionContext(user_id=user_id, role=ActorRole(role.lower()))
    except ValueError:
        return None


def session_from_headers(headers: Mapping[str, str]) -> Optional[SessionContext]:
    """Resolve the caller for a websocket handshake."""
    return parse_session(headers.get("x-user-id"), headers.get("x-user-role"))


async def get_session(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> SessionContext:
    """The authenticated caller, as stamped by the identity gateway."""
    session = parse_session(x_user_id, x_user_role)
    if session is None:
        raise HTTPException(status_code=401, detail="Missing or invalid user identity")
    return session
