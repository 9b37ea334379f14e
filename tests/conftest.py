# tests/conftest.py
import os
import tempfile
from datetime import date, datetime, timedelta, timezone

# Must be set before the app modules read their settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAILS"] = '["admin@example.com"]'
os.environ["MEDIA_DIR"] = tempfile.mkdtemp(prefix="mealbridge-media-")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlmodel import Session, SQLModel

from db import engine
from main import app
from routers.auth import create_session_token


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


@pytest.fixture
async def client():
    SQLModel.metadata.drop_all(engine)
    # Lifespan recreates the tables and seeds the categories.
    async with LifespanManager(app):
        transport = ASGITransport(app=app, raise_app_exceptions=True)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def act_as(client):
    def _act_as(user_id):
        client.cookies.clear()
        if user_id is not None:
            client.cookies.set("session", create_session_token(user_id))

    return _act_as


@pytest.fixture
def make_user(client):
    async def _make_user(email, role="recipient", display_name=None):
        r = await client.post("/register", json={
            "email": email,
            "password": "secret-pw",
            "display_name": display_name or email.split("@")[0],
            "role": role,
        })
        assert r.status_code == 201, r.text
        client.cookies.clear()
        return r.json()["id"]

    return _make_user


def build_donation_payload(**overrides):
    start = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "title": "Sourdough loaves",
        "description": "Two loaves baked this morning",
        "category": "bread",
        "quantity": "2 loaves",
        "expiry_date": (date.today() + timedelta(days=3)).isoformat(),
        "pickup_window_start": start.isoformat(),
        "pickup_window_end": (start + timedelta(hours=4)).isoformat(),
        "condition": "sealed",
        "storage_type": "ambient",
        "address_text": "Rue de Rivoli 1, Paris",
        "location_lat": 48.8566,
        "location_lng": 2.3522,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_donation(client, act_as):
    async def _make_donation(owner_id, **overrides):
        act_as(owner_id)
        r = await client.post("/donations/", json=build_donation_payload(**overrides))
        assert r.status_code == 201, r.text
        return r.json()

    return _make_donation


@pytest.fixture
def reserve(client, act_as):
    async def _reserve(user_id, donation_id, message=None):
        act_as(user_id)
        r = await client.post("/reservations/", json={"donation_id": donation_id, "message": message})
        assert r.status_code == 201, r.text
        return r.json()

    return _reserve


@pytest.fixture
def donation_payload():
    return build_donation_payload
