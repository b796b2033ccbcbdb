"""
Integration tests for the REST and websocket endpoints.

The app is built around the test controller (SQLite + in-process bus), so
routes, dependencies and exception handlers run for real.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app
from src.domain.enums import ActorRole, NotificationKind, OnboardingStatus
from src.infrastructure.database import create_schema, make_engine, make_session_factory
from src.infrastructure.events import InMemoryEventBus
from src.services.lifecycle import build_controller
from tests.conftest import (
    OTHER_RIDER_ID,
    PASSENGER_ID,
    RIDER_ID,
    add_user,
    seed_users,
)

PASSENGER_HEADERS = {"X-User-Id": PASSENGER_ID, "X-User-Role": "passenger"}
RIDER_HEADERS = {"X-User-Id": RIDER_ID, "X-User-Role": "rider"}
OTHER_RIDER_HEADERS = {"X-User-Id": OTHER_RIDER_ID, "X-User-Role": "rider"}

RIDE_BODY = {
    "pickup": {"address": "Accra Mall", "lat": 5.6221, "lng": -0.1733},
    "dropoff": "Circle",
    "fare": 25.0,
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest.fixture
def app(controller):
    return create_app(controller)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create(client: AsyncClient) -> dict:
    resp = await client.post("/api/v1/rides", json=RIDE_BODY, headers=PASSENGER_HEADERS)
    assert resp.status_code == 201
    return resp.json()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    await _create(client)
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "pending_rides": 1}


@pytest.mark.asyncio
async def test_missing_identity_is_401(client: AsyncClient):
    resp = await client.post("/api/v1/rides", json=RIDE_BODY)
    assert resp.status_code == 401

    resp = await client.get(
        "/api/v1/rides", headers={"X-User-Id": "x", "X-User-Role": "admin"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_ride_returns_201(client: AsyncClient):
    data = await _create(client)
    assert data["status"] == "pending"
    assert data["rider_id"] is None
    assert data["pickup"] == {"address": "Accra Mall", "latitude": 5.6221, "longitude": -0.1733}
    assert data["dropoff"] == {"address": "Circle", "latitude": None, "longitude": None}
    assert data["version"] == 1


@pytest.mark.asyncio
async def test_create_ride_validation(client: AsyncClient):
    resp = await client.post(
        "/api/v1/rides",
        json={**RIDE_BODY, "fare": -3},
        headers=PASSENGER_HEADERS,
    )
    assert resp.status_code == 422

    resp = await client.post(
        "/api/v1/rides",
        json={**RIDE_BODY, "dropoff": "   "},
        headers=PASSENGER_HEADERS,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_rider_cannot_create_ride(client: AsyncClient):
    resp = await client.post("/api/v1/rides", json=RIDE_BODY, headers=RIDER_HEADERS)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_get_ride_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/rides/9999", headers=PASSENGER_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_full_trip(client: AsyncClient):
    ride_id = (await _create(client))["id"]

    resp = await client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["rider_info"]["name"] == "Kwame Adjei"

    resp = await client.put(
        f"/api/v1/rides/{ride_id}/rider-location",
        json={"lat": 5.61, "lng": -0.17},
        headers=RIDER_HEADERS,
    )
    assert resp.json()["rider_location"] == [5.61, -0.17]

    for status in ("picked_up", "completed"):
        resp = await client.post(
            f"/api/v1/rides/{ride_id}/status",
            json={"status": status},
            headers=RIDER_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == status

    resp = await client.post(
        f"/api/v1/rides/{ride_id}/rating",
        json={"stars": 5, "feedback": "Great"},
        headers=PASSENGER_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rated"
    assert resp.json()["passenger_rating"] == 5

    history = await client.get("/api/v1/rides", headers=RIDER_HEADERS)
    assert [r["id"] for r in history.json()] == [ride_id]


@pytest.mark.asyncio
async def test_second_claim_is_409(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    await client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)

    resp = await client.post(f"/api/v1/rides/{ride_id}/claim", headers=OTHER_RIDER_HEADERS)

    assert resp.status_code == 409
    assert resp.json()["detail"] == "This ride is no longer available"


@pytest.mark.asyncio
async def test_cancel_pending_ride(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    resp = await client.post(
        f"/api/v1/rides/{ride_id}/cancel",
        json={"reason": "Change of plans"},
        headers=PASSENGER_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancelled_by"] == "passenger"


@pytest.mark.asyncio
async def test_cancel_already_cancelled_ride_fails(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    await client.post(f"/api/v1/rides/{ride_id}/cancel", headers=PASSENGER_HEADERS)
    resp = await client.post(f"/api/v1/rides/{ride_id}/cancel", headers=PASSENGER_HEADERS)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rider_cancel_of_open_request_is_409(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    resp = await client.post(f"/api/v1/rides/{ride_id}/cancel", headers=RIDER_HEADERS)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rating_out_of_range_is_422(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    resp = await client.post(
        f"/api/v1/rides/{ride_id}/rating", json={"stars": 9}, headers=PASSENGER_HEADERS
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_non_participant_is_403(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    await client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)

    resp = await client.post(
        f"/api/v1/rides/{ride_id}/status",
        json={"status": "picked_up"},
        headers=OTHER_RIDER_HEADERS,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_pending_list_and_availability(client: AsyncClient):
    await _create(client)

    resp = await client.get("/api/v1/riders/pending", headers=RIDER_HEADERS)
    assert resp.status_code == 200
    assert len(resp.json()) == 1

    resp = await client.put(
        "/api/v1/riders/me/availability", json={"online": False}, headers=RIDER_HEADERS
    )
    assert resp.status_code == 204
    resp = await client.get("/api/v1/riders/pending", headers=RIDER_HEADERS)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_onboarding_approval_unlocks_claiming(client: AsyncClient, controller):
    await add_user(
        controller.session_factory,
        "rider-new",
        ActorRole.RIDER,
        onboarding=OnboardingStatus.PENDING,
    )
    headers = {"X-User-Id": "rider-new", "X-User-Role": "rider"}
    ride_id = (await _create(client))["id"]

    resp = await client.post(f"/api/v1/rides/{ride_id}/claim", headers=headers)
    assert resp.status_code == 403

    resp = await client.patch(
        "/api/v1/admin/riders/rider-new/onboarding", json={"status": "approved"}
    )
    assert resp.status_code == 204

    resp = await client.post(f"/api/v1/rides/{ride_id}/claim", headers=headers)
    assert resp.status_code == 200

    resp = await client.patch(
        f"/api/v1/admin/riders/{PASSENGER_ID}/onboarding", json={"status": "approved"}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_notification_inbox(client: AsyncClient):
    ride_id = (await _create(client))["id"]
    await client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)
    await client.post(
        f"/api/v1/rides/{ride_id}/status", json={"status": "picked_up"}, headers=RIDER_HEADERS
    )

    inbox = (await client.get("/api/v1/notifications", headers=PASSENGER_HEADERS)).json()
    assert [n["kind"] for n in inbox] == [
        NotificationKind.RIDE_PICKED_UP.value,
        NotificationKind.RIDE_ACCEPTED.value,
    ]
    unread = await client.get("/api/v1/notifications/unread-count", headers=PASSENGER_HEADERS)
    assert unread.json() == {"unread": 2}

    resp = await client.patch(
        f"/api/v1/notifications/{inbox[0]['id']}/read", headers=PASSENGER_HEADERS
    )
    assert resp.status_code == 204
    resp = await client.patch(
        f"/api/v1/notifications/{inbox[1]['id']}/read", headers=RIDER_HEADERS
    )
    assert resp.status_code == 404

    resp = await client.post("/api/v1/notifications/read-all", headers=PASSENGER_HEADERS)
    assert resp.json() == {"count": 1}
    resp = await client.delete("/api/v1/notifications", headers=PASSENGER_HEADERS)
    assert resp.json() == {"count": 2}


@pytest.mark.asyncio
async def test_register_push_token(client: AsyncClient, controller):
    resp = await client.put(
        "/api/v1/users/me/push-token",
        json={"token": "ExponentPushToken[abc]"},
        headers=PASSENGER_HEADERS,
    )
    assert resp.status_code == 204


# ── Websockets ────────────────────────────────────────────────────────


@pytest.fixture
def live_client(tmp_path):
    """
    TestClient for websocket tests.

    TestClient drives the app on its own event loop, so the database is
    built and seeded through its portal instead of the async fixtures.
    """
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'live.db'}")
    session_factory = make_session_factory(engine)
    app = create_app(build_controller(session_factory, InMemoryEventBus()))
    with TestClient(app) as tc:
        tc.portal.call(create_schema, engine)
        tc.portal.call(seed_users, session_factory)
        yield tc
        tc.portal.call(engine.dispose)


class TestLiveEndpoints:
    def test_ride_live_streams_snapshots_with_effects(self, live_client):
        ride_id = live_client.post(
            "/api/v1/rides", json=RIDE_BODY, headers=PASSENGER_HEADERS
        ).json()["id"]

        with live_client.websocket_connect(
            f"/api/v1/rides/{ride_id}/live", headers=PASSENGER_HEADERS
        ) as ws:
            first = ws.receive_json()
            assert first["type"] == "ride"
            assert first["ride"]["status"] == "pending"
            assert first["effects"] == []

            live_client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)
            update = ws.receive_json()
            assert update["ride"]["status"] == "accepted"
            assert [e["kind"] for e in update["effects"]] == ["alert", "navigate"]

    def test_ride_live_unknown_ride_sends_exit(self, live_client):
        with live_client.websocket_connect(
            "/api/v1/rides/missing/live", headers=PASSENGER_HEADERS
        ) as ws:
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["effects"][0]["kind"] == "exit"
            assert message["effects"][0]["delay_seconds"] == 2.0

    def test_pending_feed_alerts_new_requests(self, live_client):
        with live_client.websocket_connect(
            "/api/v1/riders/pending/live", headers=RIDER_HEADERS
        ) as ws:
            assert ws.receive_json()["rides"] == []

            ride_id = live_client.post(
                "/api/v1/rides", json=RIDE_BODY, headers=PASSENGER_HEADERS
            ).json()["id"]
            message = ws.receive_json()
            assert [r["id"] for r in message["rides"]] == [ride_id]
            assert message["effects"][0]["title"] == "New Ride Request"

    def test_inbox_live(self, live_client):
        ride_id = live_client.post(
            "/api/v1/rides", json=RIDE_BODY, headers=PASSENGER_HEADERS
        ).json()["id"]
        with live_client.websocket_connect(
            "/api/v1/notifications/live", headers=PASSENGER_HEADERS
        ) as ws:
            live_client.post(f"/api/v1/rides/{ride_id}/claim", headers=RIDER_HEADERS)
            message = ws.receive_json()
            assert message["notification"]["kind"] == "ride_accepted"
