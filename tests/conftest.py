"""Pytest fixtures for testing"""

import pytest
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from wadiah_ledger.api.main import create_app
from wadiah_ledger.domain.models import OrderStatus, RoundingPolicy, RoundingSettings
from wadiah_ledger.infrastructure.database.models import Base
from wadiah_ledger.infrastructure.database.repositories import OrderRepository
from wadiah_ledger.infrastructure.database.session import build_engine, get_db


# Test database; a file so worker threads in the concurrency tests share it
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Session factory for worker threads; each thread opens and closes its own session"""
    return TestingSessionLocal


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def rounding_settings() -> RoundingSettings:
    return RoundingSettings(rounding_multiple=500, default_policy=RoundingPolicy.NONE, wadiah_enabled=True)


@pytest.fixture
def make_order(db: Session) -> Callable:
    """Create a committed laundry order and return its id"""

    def _make(student_id: str, total_price: int, status: OrderStatus = OrderStatus.MENUNGGU_PEMBAYARAN):
        order = OrderRepository(db).create(student_id, total_price, status)
        db.commit()
        return order.id

    return _make
