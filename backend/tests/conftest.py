"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets its own in-memory SQLite database so commits and rollbacks
inside the alert engine behave exactly as they do against Postgres.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from api.deps import get_db
from api.main import app
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(test_db):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Seed a device with one todolist, a sibling todolist, and a KPI."""
    from db.models import Device, Kpi, Task, Todolist

    device = Device(name="Cold Room 1", location="Kitchen, basement")
    test_db.add(device)
    await test_db.flush()

    kpi = Kpi(
        name="Temperature",
        description="Cold room temperature in °C",
        value=[{"id": "temp", "name": "Temp", "type": "number"}],
    )
    test_db.add(kpi)
    await test_db.flush()

    todolist = Todolist(
        device_id=device.id,
        scheduled_execution=datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc),
    )
    other_todolist = Todolist(
        device_id=device.id,
        scheduled_execution=datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc),
    )
    test_db.add_all([todolist, other_todolist])
    await test_db.flush()

    task = Task(todolist_id=todolist.id, kpi_id=kpi.id, value=8)
    test_db.add(task)
    await test_db.commit()

    return {
        "device": device,
        "kpi": kpi,
        "todolist": todolist,
        "other_todolist": other_todolist,
        "task": task,
    }


@pytest.fixture
def make_alert(test_db, seeded_db):
    """Factory for KPI alerts scoped to the seeded KPI/todolist."""
    from db.models import KpiAlert

    async def _make(conditions, todolist=None, is_active=True, email="ops@example.com"):
        alert = KpiAlert(
            kpi_id=seeded_db["kpi"].id,
            todolist_id=(todolist or seeded_db["todolist"]).id,
            email=email,
            conditions=conditions,
            is_active=is_active,
        )
        test_db.add(alert)
        await test_db.commit()
        return alert

    return _make


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture alert emails instead of calling SendGrid."""
    sent = []

    async def fake_send(to_email, data):
        sent.append((to_email, data))

    monkeypatch.setattr("alerts.recorder.send_alert_email", fake_send)
    return sent


@pytest.fixture
def failing_email(monkeypatch):
    """Make every alert email fail delivery."""
    from alerts.errors import AlertDeliveryError

    attempts = []

    async def fake_send(to_email, data):
        attempts.append((to_email, data))
        raise AlertDeliveryError("SendGrid rejected the message with status 503", status_code=503)

    monkeypatch.setattr("alerts.recorder.send_alert_email", fake_send)
    return attempts
