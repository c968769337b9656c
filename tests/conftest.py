import os

# Settings are read at import time; point them at a throwaway SQLite file before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-unused.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_MAX", "100000")

from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.auth.models import User
from app.auth.security import hash_password
from app.core.enums import UserRole
from app.db.session import Database
from app.main import create_app

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"


@pytest.fixture()
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh SQLite file database with all tables, one per test."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.disconnect()


@pytest.fixture()
def app(database: Database) -> FastAPI:
    return create_app(database=database)


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def create_user(
    database: Database,
    username: str,
    password: str,
    role: str = UserRole.ADMIN.value,
    full_name: Optional[str] = None,
    is_active: bool = True,
) -> User:
    async with database.session() as db:
        user = User(
            username=username,
            full_name=full_name,
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


async def login(client: AsyncClient, username: str, password: str) -> Dict[str, str]:
    response = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
async def admin_user(database: Database) -> User:
    return await create_user(database, ADMIN_USERNAME, ADMIN_PASSWORD, full_name="System Administrator")


@pytest.fixture()
async def auth_headers(client: AsyncClient, admin_user: User) -> Dict[str, str]:
    return await login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture()
def create_station(client: AsyncClient, auth_headers: Dict[str, str]) -> Callable[..., Awaitable[dict]]:
    async def _create(name: str = "Makpetrol Aerodrom", location: str = "Aerodrom, Skopje") -> dict:
        response = await client.post(
            "/api/v1/stations", json={"name": name, "location": location}, headers=auth_headers
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture()
def create_pump(client: AsyncClient, auth_headers: Dict[str, str]) -> Callable[..., Awaitable[dict]]:
    async def _create(
        station_id: int,
        pump_number: int = 1,
        main_rfid_tag: str = "MAIN-TAG-001",
        child_tags: Optional[List[str]] = None,
    ) -> dict:
        tags = child_tags if child_tags is not None else ["CHILD-A", "CHILD-B", "CHILD-C"]
        response = await client.post(
            f"/api/v1/stations/{station_id}/pumps",
            json={
                "pump_number": pump_number,
                "main_rfid_tag": main_rfid_tag,
                "expected_child_tags": [{"tag_id": tag} for tag in tags],
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create
