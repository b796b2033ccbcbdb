"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` so that
concurrent units of work get their own connections and SQLite's write
lock arbitrates them, the way row locks do in PostgreSQL.  The event bus
is the in-process one.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.middleware import limiter
from src.domain.enums import ActorRole, OnboardingStatus
from src.infrastructure.database import create_schema, make_engine, make_session_factory
from src.infrastructure.events import InMemoryEventBus
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import UserRepository
from src.services.lifecycle import RideLifecycleController, build_controller
from src.services.session import SessionContext

PASSENGER_ID = "passenger-1"
RIDER_ID = "rider-1"
OTHER_RIDER_ID = "rider-2"

PICKUP = {"address": "Accra Mall", "lat": 5.6221, "lng": -0.1733}
DROPOFF = {"address": "Circle", "lat": 5.5701, "lng": -0.2154}


async def add_user(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    role: ActorRole,
    *,
    onboarding: OnboardingStatus = OnboardingStatus.APPROVED,
    online: bool = True,
    rating: float = 0.0,
    total_ratings: int = 0,
    push_token: Optional[str] = None,
    name: Optional[str] = None,
    **extra,
) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(
                UserModel(
                    id=user_id,
                    name=name or user_id.title(),
                    email=f"{user_id}@example.com",
                    role=role,
                    onboarding_status=onboarding,
                    is_online=online,
                    rating=rating,
                    total_ratings=total_ratings,
                    push_token=push_token,
                    **extra,
                )
            )


async def load_user(session_factory, user_id: str) -> UserModel:
    async with session_factory() as session:
        return await UserRepository(session).get_by_id(user_id)


@pytest.fixture(autouse=True)
def _no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh database file, yield a session factory."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}")
    await create_schema(engine)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


async def seed_users(session_factory) -> None:
    """One passenger and two approved, online riders."""
    await add_user(
        session_factory, PASSENGER_ID, ActorRole.PASSENGER, name="Ama Mensah"
    )
    await add_user(
        session_factory,
        RIDER_ID,
        ActorRole.RIDER,
        name="Kwame Adjei",
        phone="+233244444444",
        vehicle_model="Honda Ace",
        vehicle_color="Red",
        vehicle_plate="GR-1234-22",
    )
    await add_user(session_factory, OTHER_RIDER_ID, ActorRole.RIDER, name="Akosua Darko")


@pytest_asyncio.fixture
async def controller(session_factory, bus) -> RideLifecycleController:
    """Controller over the test database with one passenger and two riders."""
    await seed_users(session_factory)
    return build_controller(session_factory, bus)


@pytest.fixture
def passenger() -> SessionContext:
    return SessionContext(PASSENGER_ID, ActorRole.PASSENGER)


@pytest.fixture
def rider() -> SessionContext:
    return SessionContext(RIDER_ID, ActorRole.RIDER)


@pytest.fixture
def other_rider() -> SessionContext:
    return SessionContext(OTHER_RIDER_ID, ActorRole.RIDER)
