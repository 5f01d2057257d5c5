"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from float_ledger.api.main import create_app
from float_ledger.domain.fees import FeeCalculator, FeeConfig
from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.models import AccountRole
from float_ledger.infrastructure.database.models import Base
from float_ledger.infrastructure.database.repositories import SettlementCountOracle
from float_ledger.infrastructure.database.session import get_db, init_db
from float_ledger.services.ledger import LedgerService
from float_ledger.services.locks import AccountLockRegistry


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Tuesday 10 March 2026, 10:00 in Johannesburg
FIXED_NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    init_db(engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Sessions on the test database, one per thread in concurrency tests"""
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
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fee_config() -> FeeConfig:
    return FeeConfig(negotiated_fee_cents=350)


@pytest.fixture
def service(db: Session, clock: FixedClock, fee_config: FeeConfig) -> LedgerService:
    """Ledger service on the test database with a fixed clock and its own locks"""
    return LedgerService(
        db,
        fee_calculator=FeeCalculator(fee_config, SettlementCountOracle(db)),
        locks=AccountLockRegistry(),
        clock=clock,
    )


@pytest.fixture
def supplier_account() -> FloatAccount:
    """In-memory supplier float with R1000.00"""
    return FloatAccount(
        account_id="SUP-001",
        display_name="Acme Airtime",
        supplier_balance_cents=100_000,
        minimum_balance_cents=10_000,
        maximum_balance_cents=1_000_000,
    )


@pytest.fixture
def dual_account() -> FloatAccount:
    """In-memory dual-role account with a R1000.00 net settlement threshold"""
    return FloatAccount(
        account_id="DUAL-001",
        display_name="Corner Spaza",
        role=AccountRole.DUAL_ROLE,
        net_settlement_threshold_cents=100_000,
        auto_settlement_enabled=True,
    )
