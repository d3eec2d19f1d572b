from .abstract_repositories import (
    AbstractParkingLotRepository,
    AbstractParkingSessionRepository,
    AbstractInvoiceRepository,
    AbstractPricingTierRepository,
    LotMutator,
)

__all__ = [
    "AbstractParkingLotRepository",
    "AbstractParkingSessionRepository",
    "AbstractInvoiceRepository",
    "AbstractPricingTierRepository",
    "LotMutator",
]
