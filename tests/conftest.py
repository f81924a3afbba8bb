"""Pytest fixtures for testing"""

import os

# Point the app's own engine at SQLite before anything under credit_ledger is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from decimal import Decimal
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from credit_ledger.api.main import create_app
from credit_ledger.infrastructure.database.models import Base, LedgerAccount
from credit_ledger.infrastructure.database.session import get_db
from credit_ledger.services.ledger import LedgerService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory() -> sessionmaker:
    return TestingSessionLocal


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
def ledger(db: Session) -> LedgerService:
    return LedgerService(db)


@pytest.fixture
def make_account(ledger: LedgerService) -> Callable[..., LedgerAccount]:
    """Open an account and optionally grant credit and spend some of it"""

    def _make(name: str = "Acme Supplies", credit=None, spend=None, **kwargs) -> LedgerAccount:
        account = ledger.open_account(name, actor_id="admin_1", **kwargs)
        if credit is not None:
            ledger.assign_initial_credit(account.id, Decimal(str(credit)), actor_id="admin_1")
        if spend is not None:
            ledger.create_purchase_order(account.id, Decimal(str(spend)), f"PO-{account.id}-seed")
        return ledger.get_account(account.id)

    return _make
