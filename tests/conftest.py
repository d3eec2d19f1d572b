import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
import tempfile
import os

from vaultpark.infrastructure.persistence.models.models import Base, PricingTier as ORMPricingTier
from vaultpark.infrastructure.persistence.sqlalchemy_repositories import (
    SQLAlchemyParkingLotRepository,
    SQLAlchemyParkingSessionRepository,
    SQLAlchemyInvoiceRepository,
    SQLAlchemyPricingTierRepository,
)
from vaultpark.application.services.analytics_service import AnalyticsService
from vaultpark.application.services.capacity_ledger import CapacityLedger
from vaultpark.application.services.invoice_service import InvoiceService
from vaultpark.application.services.lot_service import LotService
from vaultpark.application.services.scan_service import ScanService
from vaultpark.application.services.session_service import SessionService
from vaultpark.config.settings_env import Settings
from vaultpark.domain.access_token import TokenCodec
from vaultpark.domain.billing import DEFAULT_TIERS

ISSUER = "VAULTPARK"


@pytest.fixture(scope="function")
def test_db_path():
    """Path of a throwaway database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp_file:
        path = tmp_file.name

    yield path

    os.unlink(path)


@pytest.fixture(scope="function")
async def test_db(test_db_path):
    """Create a test database for each test function."""
    # NullPool keeps aiosqlite connections from leaking between tests
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{test_db_path}",
        poolclass=NullPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    yield async_session_maker

    await engine.dispose()


@pytest.fixture
async def db_session(test_db):
    """Create a database session for a test, with the built-in pricing tiers seeded."""
    async with test_db() as session:
        for membership_type, tier in DEFAULT_TIERS.items():
            session.add(ORMPricingTier(
                membership_type=membership_type,
                hourly_rate=tier.hourly_rate,
                daily_cap=tier.daily_cap,
                monthly_unlimited_threshold=tier.monthly_unlimited_threshold,
            ))
        await session.commit()
        yield session
        await session.rollback()


@pytest.fixture
def test_settings():
    """Provide test settings."""
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        ASYNC_DATABASE_URL="sqlite+aiosqlite:///:memory:",
        CAPACITY_POLICY="clamp",
        LOCAL_TIMEZONE="UTC",
    )


@pytest.fixture
def lot_repo(db_session):
    return SQLAlchemyParkingLotRepository(db_session)


@pytest.fixture
def session_repo(db_session):
    return SQLAlchemyParkingSessionRepository(db_session)


@pytest.fixture
def invoice_repo(db_session):
    return SQLAlchemyInvoiceRepository(db_session)


@pytest.fixture
def tier_repo(db_session):
    return SQLAlchemyPricingTierRepository(db_session)


@pytest.fixture
def ledger(lot_repo):
    return CapacityLedger(lot_repo, policy="clamp")


@pytest.fixture
def invoice_service(invoice_repo, session_repo, tier_repo):
    return InvoiceService(
        invoice_repo=invoice_repo,
        parking_session_repo=session_repo,
        pricing_tier_repo=tier_repo,
    )


@pytest.fixture
def session_service(session_repo, lot_repo, ledger, invoice_service):
    return SessionService(
        parking_session_repo=session_repo,
        lot_repo=lot_repo,
        ledger=ledger,
        invoice_service=invoice_service,
    )


@pytest.fixture
def codec():
    return TokenCodec(issuer_tag=ISSUER, ttl_millis=120_000)


@pytest.fixture
def scan_service(session_service, codec):
    return ScanService(session_service, codec=codec)


@pytest.fixture
def lot_service(lot_repo, session_repo):
    return LotService(lot_repo=lot_repo, parking_session_repo=session_repo)


@pytest.fixture
def analytics_service(session_repo):
    return AnalyticsService(session_repo)


@pytest.fixture
async def sample_lot(lot_service):
    """A ten-space lot, empty."""
    return await lot_service.create_lot(
        owner_id="guard-1",
        owner_name="Gate Guard",
        name="Central Garage",
        location="1 Main Street",
        total_spaces=10,
        hourly_rate=5.0,
        daily_cap=40.0,
    )
