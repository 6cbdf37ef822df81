import os

# Settings are read at import time; configure them before any app import
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OVERDUE_SWEEP_ENABLED"] = "false"
os.environ["EMAIL_WEBHOOK_URL"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401  (registers the tables)
from app.database import Base, build_engine, get_db
from app.services.catalog import CatalogManager
from app.services.entity_store import clear_subscriptions
from app.services.loan_engine import LoanEngine


class FrozenClock:
    """Callable clock the services accept in place of now_utc."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()
    clear_subscriptions()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog(db):
    return CatalogManager(db)


@pytest.fixture
def loans(db, clock):
    return LoanEngine(db, clock=clock)


@pytest.fixture
def book(catalog):
    return catalog.create_book("Rayuela", "Julio Cortazar", "9788437604572")


@pytest.fixture
def member(catalog):
    return catalog.create_member("Ana Perez", "30123456", "ana@example.com")


@pytest.fixture
def client(session_factory):
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def librarian_headers(client):
    response = client.post("/api/auth/register", json={
        "email": "librarian@example.com",
        "full_name": "Marta Librarian",
        "national_id": "20111222",
        "password": "secret123",
    })
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
