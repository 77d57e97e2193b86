import os

# keep the app's own engine in memory and the maintenance loop off
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SWEEP_INTERVAL_MINUTES"] = "0"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from turnos.appointments import AppointmentService
from turnos.auth import hash_password
from turnos.db import build_engine, create_db_and_tables, get_session
from turnos.deps import get_clock
from turnos.models import Appointment, SystemSetting, User
from turnos.schemas import Actor, UserRole

# Monday 2 November 2026, 08:00
NOW = datetime(2026, 11, 2, 8, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role="client", name=None, email=None, password=None, active=True):
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@example.com",
            name=name if name is not None else f"{role.title()} {counter['n']}",
            password_hash=hash_password(password) if password else "!",
            role=role,
            active=active,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def as_actor():
    def _actor(user):
        return Actor(id=user.id, role=UserRole(user.role), email=user.email)

    return _actor


@pytest.fixture
def set_setting(session):
    def _set(key, value):
        session.add(SystemSetting(key=key, value=value))
        session.commit()

    return _set


@pytest.fixture
def make_service(session):
    """Build a service after any settings are in place; config is read once per service."""

    def _make(at=NOW):
        return AppointmentService(session, clock=lambda: at)

    return _make


@pytest.fixture
def add_appointment(session):
    """Insert an appointment row directly, bypassing every booking rule."""

    def _add(barber, client, starts_at, state=1, note=None):
        appt = Appointment(
            starts_at=starts_at,
            barber_id=barber.id,
            client_id=client.id,
            state_id=int(state),
            note=note,
        )
        session.add(appt)
        session.commit()
        session.refresh(appt)
        return appt

    return _add


@pytest.fixture
def client(engine):
    from turnos.main import app

    def _session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(email, password="password123"):
        resp = client.post("/auth/login", data={"username": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
