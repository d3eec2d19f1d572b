from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from vaultpark.config.settings_env import settings
from vaultpark.domain.billing import DEFAULT_TIERS
from vaultpark.infrastructure.persistence.models.models import Base, PricingTier
from vaultpark.shared.utils import logger

DATABASE_URL = settings.DATABASE_URL
ASYNC_DATABASE_URL = settings.ASYNC_DATABASE_URL

# Sync engine for initialization
engine = create_engine(DATABASE_URL, connect_args={
                       "check_same_thread": False} if "sqlite" in DATABASE_URL else {})

# Async engine for application
async_engine = create_async_engine(ASYNC_DATABASE_URL, echo=False)
AsyncSessionLocal = async_sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def seed_pricing_tiers(session: Session) -> int:
    """Insert the built-in tiers that are not in the table yet."""
    created = 0
    for membership_type, tier in DEFAULT_TIERS.items():
        if session.get(PricingTier, membership_type) is None:
            session.add(PricingTier(
                membership_type=membership_type,
                hourly_rate=tier.hourly_rate,
                daily_cap=tier.daily_cap,
                monthly_unlimited_threshold=tier.monthly_unlimited_threshold,
            ))
            created += 1
    session.commit()
    return created


def init_db(bind=None):
    bind = bind or engine
    logger.info(f"Initializing database at: {bind.url}")
    Base.metadata.create_all(bind=bind, checkfirst=True)

    with Session(bind) as session:
        created = seed_pricing_tiers(session)
    logger.info(f"Tables ready, {created} pricing tiers seeded")
