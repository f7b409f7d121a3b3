from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from main import app
from core.db import Base, get_db
from schemas.order import CreateOrder
from services.order_number import CounterSequence, OrderNumberAllocator
from services.orders import OrderService
from tests.fakes import FrozenClock, InMemoryOrderRepository, make_order_payload


@pytest.fixture()
def db():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db_session = TestingSessionLocal()
    yield db_session
    db_session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def client(db):
    """Create a test client whose requests share the test session."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2025, 12, 1, 9, 30))


@pytest.fixture()
def repository():
    return InMemoryOrderRepository()


@pytest.fixture()
def service(repository, clock):
    return OrderService(repository, OrderNumberAllocator(CounterSequence(repository)), clock=clock)


@pytest.fixture()
def create_order(service):
    """Create an order through the service from a wire payload."""

    def _create(user_id: str = "user-123", **overrides):
        return service.create_order(CreateOrder.model_validate(make_order_payload(user_id, **overrides)))

    return _create
