"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 sample passengers
  - 4 sample riders (approved / pending / incomplete onboarding)
  - 6 sample rides (mix of pending, accepted, picked_up, completed, rated,
    cancelled)
"""

import asyncio
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from src.domain.entities import Location
from src.domain.enums import ActorRole, OnboardingStatus, RideStatus
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import RideModel, UserModel
from src.infrastructure.repositories import rider_info_from_user


PASSENGERS = [
    {"id": "passenger-ama", "name": "Ama Mensah", "email": "ama@example.com", "phone": "+233201111111"},
    {"id": "passenger-kofi", "name": "Kofi Boateng", "email": "kofi@example.com", "phone": "+233202222222"},
    {"id": "passenger-esi", "name": "Esi Owusu", "email": "esi@example.com", "phone": "+233203333333"},
    {"id": "passenger-yaw", "name": "Yaw Asante", "email": "yaw@example.com", "phone": None},
]

RIDERS = [
    {
        "id": "rider-kwame", "name": "Kwame Adjei", "email": "kwame@example.com",
        "phone": "+233244444444", "onboarding": OnboardingStatus.APPROVED, "online": True,
        "rating": 4.8, "total_ratings": 25, "total_rides": 31,
        "vehicle": ("Honda Ace 125", "Red", "GR-1234-22"),
    },
    {
        "id": "rider-akosua", "name": "Akosua Darko", "email": "akosua@example.com",
        "phone": "+233245555555", "onboarding": OnboardingStatus.APPROVED, "online": True,
        "rating": 4.6, "total_ratings": 10, "total_rides": 12,
        "vehicle": ("Bajaj Boxer", "Blue", "AS-556-23"),
    },
    {
        "id": "rider-kojo", "name": "Kojo Frimpong", "email": "kojo@example.com",
        "phone": "+233246666666", "onboarding": OnboardingStatus.PENDING, "online": False,
        "rating": 0.0, "total_ratings": 0, "total_rides": 0,
        "vehicle": ("TVS Apache", "Black", "GT-9087-24"),
    },
    {
        "id": "rider-abena", "name": "Abena Ofori", "email": "abena@example.com",
        "phone": None, "onboarding": OnboardingStatus.INCOMPLETE, "online": False,
        "rating": 0.0, "total_ratings": 0, "total_rides": 0,
        "vehicle": None,
    },
]

PLACES = {
    "accra_mall": Location("Accra Mall, Tetteh Quarshie", 5.6221, -0.1733),
    "circle": Location("Kwame Nkrumah Circle", 5.5701, -0.2154),
    "osu": Location("Oxford Street, Osu", 5.5560, -0.1820),
    "airport": Location("Kotoka International Airport", 5.6052, -0.1668),
    "legon": Location("University of Ghana, Legon", 5.6508, -0.1870),
    "makola": Location("Makola Market"),  # address only, as older clients send
}


def _columns(prefix: str, location: Location) -> dict:
    return {
        f"{prefix}_address": location.address,
        f"{prefix}_lat": location.latitude,
        f"{prefix}_lng": location.longitude,
    }


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        for p in PASSENGERS:
            session.add(UserModel(role=ActorRole.PASSENGER, **p))

        riders = {}
        for r in RIDERS:
            vehicle = r["vehicle"] or (None, None, None)
            m = UserModel(
                id=r["id"],
                name=r["name"],
                email=r["email"],
                phone=r["phone"],
                role=ActorRole.RIDER,
                onboarding_status=r["onboarding"],
                is_online=r["online"],
                rating=r["rating"],
                total_ratings=r["total_ratings"],
                total_rides=r["total_rides"],
                vehicle_model=vehicle[0],
                vehicle_color=vehicle[1],
                vehicle_plate=vehicle[2],
            )
            session.add(m)
            riders[r["id"]] = m
        await session.flush()
        print(f"  Created {len(PASSENGERS)} passengers and {len(RIDERS)} riders")

        # ── Rides ─────────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        kwame = asdict(rider_info_from_user(riders["rider-kwame"]))
        akosua = asdict(rider_info_from_user(riders["rider-akosua"]))

        rides_data = [
            {
                "passenger_id": "passenger-ama",
                "pickup": PLACES["accra_mall"], "dropoff": PLACES["circle"],
                "status": RideStatus.PENDING, "fare": 25.0, "estimated_duration": 18,
            },
            {
                "passenger_id": "passenger-yaw",
                "pickup": PLACES["makola"], "dropoff": PLACES["osu"],
                "status": RideStatus.PENDING, "fare": None, "estimated_duration": None,
            },
            {
                "passenger_id": "passenger-kofi",
                "pickup": PLACES["airport"], "dropoff": PLACES["legon"],
                "status": RideStatus.ACCEPTED, "fare": 30.0, "estimated_duration": 22,
                "rider_id": "rider-kwame", "rider_info": kwame,
                "rider_lat": 5.6100, "rider_lng": -0.1700,
                "accepted_at": now - timedelta(minutes=4),
            },
            {
                "passenger_id": "passenger-esi",
                "pickup": PLACES["osu"], "dropoff": PLACES["accra_mall"],
                "status": RideStatus.PICKED_UP, "fare": 28.5, "estimated_duration": 20,
                "rider_id": "rider-akosua", "rider_info": akosua,
                "accepted_at": now - timedelta(minutes=15),
                "picked_up_at": now - timedelta(minutes=6),
            },
            {
                "passenger_id": "passenger-ama",
                "pickup": PLACES["circle"], "dropoff": PLACES["legon"],
                "status": RideStatus.RATED, "fare": 32.0, "estimated_duration": 25,
                "rider_id": "rider-kwame", "rider_info": kwame,
                "accepted_at": now - timedelta(days=1, minutes=40),
                "picked_up_at": now - timedelta(days=1, minutes=30),
                "completed_at": now - timedelta(days=1, minutes=5),
                "rated_at": now - timedelta(days=1),
                "passenger_rating": 5, "passenger_feedback": "Smooth ride",
            },
            {
                "passenger_id": "passenger-kofi",
                "pickup": PLACES["legon"], "dropoff": PLACES["makola"],
                "status": RideStatus.CANCELLED, "fare": 27.0, "estimated_duration": 24,
                "cancelled_at": now - timedelta(hours=3),
                "cancelled_by": ActorRole.PASSENGER,
                "cancellation_reason": "Change of plans",
            },
        ]

        for r in rides_data:
            pickup = r.pop("pickup")
            dropoff = r.pop("dropoff")
            ride = RideModel(
                **_columns("pickup", pickup),
                **_columns("dropoff", dropoff),
                version=1,
                created_at=now - timedelta(days=2),
                updated_at=now,
                **r,
            )
            session.add(ride)
        await session.flush()
        print(f"  Created {len(rides_data)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
