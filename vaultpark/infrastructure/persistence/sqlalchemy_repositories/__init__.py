from .sqlalchemy_repositories import (
    SQLAlchemyParkingLotRepository,
    SQLAlchemyParkingSessionRepository,
    SQLAlchemyInvoiceRepository,
    SQLAlchemyPricingTierRepository,
)

__all__ = [
    "SQLAlchemyParkingLotRepository",
    "SQLAlchemyParkingSessionRepository",
    "SQLAlchemyInvoiceRepository",
    "SQLAlchemyPricingTierRepository",
]
