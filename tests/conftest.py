# Pytest configuration for backend API tests.
# Forces a local SQLite DB, disables Redis, wires a JWT secret, and keeps email offline.
import os
from typing import Callable, Dict, Iterator, Tuple

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, predictable JWT secret, no SMTP
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("STAYSITE_JWT_SECRET", "test-secret")
os.environ["SMTP_HOST"] = ""

import sys
# Ensure the repo root is on sys.path so 'staysite' resolves when running pytest from anywhere
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from staysite.main import app  # noqa: E402
from staysite.db import Base, SessionLocal, engine  # noqa: E402
from staysite import models, notifications  # noqa: E402
from staysite.rate_limit import reset_rate_limits  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test, and
    start every test with empty rate-limit windows.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_rate_limits()
    yield


@pytest.fixture(autouse=True)
def outbox(monkeypatch: pytest.MonkeyPatch) -> notifications.LogEmailSender:
    """Offline email sender; tests inspect `.outbox` for delivered messages."""
    sender = notifications.LogEmailSender()
    monkeypatch.setattr(notifications, "email_sender", sender)
    return sender


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """
    FastAPI TestClient bound to the application for HTTP-level tests.
    """
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db() -> Iterator:
    """Direct ORM session for service-level tests."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_tenant(db) -> Callable[..., models.Tenant]:
    """
    Factory: tenant + property + `rooms` active rooms.

    Returns the tenant; rooms are reachable through `rooms_of(db, tenant)`.
    """
    counter = {"n": 0}

    def _make(slug: str = None, rooms: int = 1, auto_confirm: bool = False) -> models.Tenant:
        counter["n"] += 1
        tenant = models.Tenant(slug=slug or f"inn-{counter['n']}", auto_confirm_bookings=auto_confirm)
        db.add(tenant)
        db.flush()
        prop = models.Property(tenant_id=tenant.id, name="Main house")
        db.add(prop)
        db.flush()
        for i in range(rooms):
            db.add(
                models.Room(
                    tenant_id=tenant.id,
                    property_id=prop.id,
                    name=f"Room {i + 1}",
                    description="A quiet room",
                    amenities=[],
                )
            )
        db.commit()
        db.refresh(tenant)
        return tenant

    return _make


def rooms_of(db, tenant: models.Tenant):
    return db.query(models.Room).filter(models.Room.tenant_id == tenant.id).order_by(models.Room.id.asc()).all()


def property_of(db, tenant: models.Tenant) -> models.Property:
    return db.query(models.Property).filter(models.Property.tenant_id == tenant.id).first()


# ----------------
# HTTP helpers
# ----------------
# Helper: create a user and return (access_token, user JSON)
def signup(client: TestClient, email: str, password: str = "changeme123") -> Tuple[str, dict]:
    r = client.post("/auth/signup", json={"email": email, "password": password})
    assert r.status_code == 201, r.text
    data = r.json()
    return data["access_token"], data["user"]


# Convenience header for authenticated requests
def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# Authenticated request scoped to one tenant
def admin_headers(token: str, tenant_id: int) -> Dict[str, str]:
    return {**auth_headers(token), "X-Tenant-Id": str(tenant_id)}


# Public storefront request for one tenant
def public_headers(tenant_id: int) -> Dict[str, str]:
    return {"X-Tenant-Id": str(tenant_id)}


def onboard(
    client: TestClient,
    email: str = "host@example.com",
    slug: str = "seaside",
    auto_confirm: bool = False,
) -> Tuple[str, dict, dict]:
    """
    Helper: sign up a host, create their tenant, and add one room.

    Returns (access_token, tenant JSON, room JSON).
    """
    token, _ = signup(client, email)
    r = client.post(
        "/api/v1/admin/tenants",
        headers=auth_headers(token),
        json={"slug": slug, "propertyName": "Seaside Inn", "autoConfirmBookings": auto_confirm},
    )
    assert r.status_code == 201, r.text
    tenant = r.json()
    room = create_room(client, token, tenant["id"], "Ocean Room")
    return token, tenant, room


def create_room(client: TestClient, token: str, tenant_id: int, name: str) -> dict:
    r = client.post(
        "/api/v1/admin/rooms",
        headers=admin_headers(token, tenant_id),
        json={"name": name, "description": "Sea view", "amenities": ["wifi"], "maxGuests": 2},
    )
    assert r.status_code == 201, r.text
    return r.json()


def booking_payload(room_id: int, check_in: str, check_out: str, **extra) -> dict:
    payload = {
        "checkInDate": check_in,
        "checkOutDate": check_out,
        "roomId": room_id,
        "guestName": "Ada Guest",
        "guestEmail": "ada@example.com",
    }
    payload.update(extra)
    return payload
