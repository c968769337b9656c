"""
Seed demo users, gas stations and sealed pumps.

Run after schema_check:
  python -m app.db.seed

Idempotent: users are matched by username, stations by name and pumps by main
RFID tag, so re-running only fills in what is missing. SEED_ADMIN_USERNAME /
SEED_ADMIN_PASSWORD replace the default admin credentials.
"""
import asyncio
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.core.enums import PumpStatus, StationStatus, UserRole
from app.core.models import ExpectedChildTag, GasStation, Pump
from app.db import base  # noqa: F401
from app.db.session import Database

# Default demo accounts (admin is overridable from the environment)
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
CONTROLLER_USERNAME = "controller"
CONTROLLER_PASSWORD = "controller123"

STATIONS: List[Tuple[str, str]] = [
    ("Makpetrol Aerodrom", "Aerodrom, Skopje"),
    ("OKTA Avtoput", "Avtoput, Skopje"),
]

# station name -> [(pump number, main tag, [(child tag, description)])]
PUMPS: Dict[str, List[Tuple[int, str, List[Tuple[str, str]]]]] = {
    "Makpetrol Aerodrom": [
        (
            1,
            "MAIN-TAG-001",
            [("CHILD-001-A", "Top seal"), ("CHILD-001-B", "Middle seal"), ("CHILD-001-C", "Bottom seal")],
        ),
        (
            2,
            "MAIN-TAG-002",
            [
                ("CHILD-002-A", "Top seal"),
                ("CHILD-002-B", "Middle seal"),
                ("CHILD-002-C", "Bottom seal"),
                ("CHILD-002-D", "Door seal"),
            ],
        ),
        (3, "MAIN-TAG-003", [("CHILD-003-A", "Top seal"), ("CHILD-003-B", "Bottom seal")]),
    ],
    "OKTA Avtoput": [
        (
            1,
            "MAIN-TAG-004",
            [("CHILD-004-A", "Top seal"), ("CHILD-004-B", "Middle seal"), ("CHILD-004-C", "Bottom seal")],
        ),
    ],
}


async def _ensure_user(db: AsyncSession, username: str, password: str, full_name: str, role: str) -> bool:
    result = await db.execute(select(User).where(User.username == username))
    if result.scalar_one_or_none():
        return False
    db.add(
        User(
            username=username,
            full_name=full_name,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )
    )
    return True


async def seed_demo_data(db: AsyncSession) -> Dict[str, int]:
    """Insert whatever demo rows are missing; returns counts of created rows."""
    created = {"users": 0, "stations": 0, "pumps": 0}

    admin_username = settings.seed_admin_username or DEFAULT_ADMIN_USERNAME
    admin_password = settings.seed_admin_password or DEFAULT_ADMIN_PASSWORD
    if await _ensure_user(db, admin_username, admin_password, "System Administrator", UserRole.ADMIN.value):
        created["users"] += 1
    if await _ensure_user(db, CONTROLLER_USERNAME, CONTROLLER_PASSWORD, "Station Controller", UserRole.ADMIN.value):
        created["users"] += 1

    for name, location in STATIONS:
        result = await db.execute(select(GasStation).where(GasStation.name == name))
        station = result.scalar_one_or_none()
        if not station:
            station = GasStation(name=name, location=location, status=StationStatus.ACTIVE.value)
            db.add(station)
            await db.flush()
            created["stations"] += 1

        for pump_number, main_tag, children in PUMPS.get(name, []):
            exists = await db.execute(select(Pump.id).where(Pump.main_rfid_tag == main_tag))
            if exists.scalar_one_or_none() is not None:
                continue
            db.add(
                Pump(
                    station_id=station.id,
                    pump_number=pump_number,
                    main_rfid_tag=main_tag,
                    status=PumpStatus.LOCKED.value,
                    expected_child_tags=[
                        ExpectedChildTag(tag_id=tag_id, description=description, is_active=True)
                        for tag_id, description in children
                    ],
                )
            )
            created["pumps"] += 1

    await db.commit()
    return created


async def main() -> None:
    database = Database(settings.database_url, echo=settings.sql_echo)
    try:
        async with database.session() as db:
            created = await seed_demo_data(db)
    finally:
        await database.disconnect()

    print(
        "Seed complete: {users} users, {stations} stations, {pumps} pumps created.".format(**created)
    )


if __name__ == "__main__":
    asyncio.run(main())
