import fnmatch
import os
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from appointment_system.app import create_app
from appointment_system.app.auth import create_access_token
from appointment_system.app.dependencies import UserRole, get_clock, get_db, get_redis_client
from appointment_system.app.models import Appointment, AvailabilityWindow, Base, Client, Provider

NOW = datetime(2026, 10, 17, 12, 0, 0)
# A Tuesday, comfortably inside NOW's month
BOOKING_DATE = date(2026, 10, 20)


class InMemoryRedis:
    """Just enough of the redis client API for the slot cache."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.store.pop(key, None) is not None
        return removed

    def scan_iter(self, match="*"):
        return [key for key in list(self.store) if fnmatch.fnmatchcase(key, match)]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def client(session_factory, redis_client):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: redis_client
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)

    with TestClient(app) as test_client:
        yield test_client


def make_client(db, email="client@example.com", created_at=NOW, **kwargs):
    client = Client(first_name=kwargs.pop("first_name", "Casey"), last_name=kwargs.pop("last_name", "Client"),
                    email=email, created_at=created_at, **kwargs)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def make_provider(db, email="provider@example.com", hourly_rate=90, is_verified=True, is_active=True,
                  created_at=NOW, availability=None, **kwargs):
    provider = Provider(
        first_name=kwargs.pop("first_name", "Robin"),
        last_name=kwargs.pop("last_name", "Provider"),
        email=email,
        specializations=kwargs.pop("specializations", ["anxiety"]),
        hourly_rate=hourly_rate,
        is_verified=is_verified,
        is_active=is_active,
        created_at=created_at,
        **kwargs
    )
    for position, (day, start, end) in enumerate(availability or []):
        provider.availability.append(AvailabilityWindow(position=position, day=day, start_time=start, end_time=end))
    db.add(provider)
    db.commit()
    db.refresh(provider)
    return provider


def make_appointment(db, client, provider, day=BOOKING_DATE, start_time="09:00", end_time="10:00",
                     status="pending", amount=90.0, session_type="individual", created_at=NOW, rating=None):
    start_h, start_m = map(int, start_time.split(":"))
    end_h, end_m = map(int, end_time.split(":"))
    appointment = Appointment(
        client_id=client.id,
        provider_id=provider.id,
        date=day,
        start_time=start_time,
        end_time=end_time,
        duration=(end_h * 60 + end_m) - (start_h * 60 + start_m),
        status=status,
        session_type=session_type,
        session_mode="video",
        amount=amount,
        rating=rating,
        created_at=created_at,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def auth_header(subject_id, role: UserRole):
    return {"Authorization": f"Bearer {create_access_token(subject_id, role)}"}
