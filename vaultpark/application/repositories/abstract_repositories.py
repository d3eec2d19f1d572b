from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from vaultpark.domain.entities import ParkingLot, ParkingSession, PricingTier, Invoice

LotMutator = Callable[[ParkingLot], None]


class AbstractParkingLotRepository(ABC):
    @abstractmethod
    async def get_by_id(self, lot_id: str) -> Optional[ParkingLot]:
        pass

    @abstractmethod
    async def get_by_owner(self, owner_id: str) -> Optional[ParkingLot]:
        pass

    @abstractmethod
    async def add(self, lot: ParkingLot) -> ParkingLot:
        pass

    @abstractmethod
    async def cas_update(self, lot_id: str, mutator: LotMutator) -> ParkingLot:
        """Apply mutator to the current lot and write it back atomically.

        Raises LotNotFound for an unknown id and StoreConflict when another
        writer changed the lot between the read and the write.
        """
        pass

    @abstractmethod
    async def get_all_active(self) -> List[ParkingLot]:
        pass

    @abstractmethod
    async def delete(self, lot_id: str) -> None:
        pass


class AbstractParkingSessionRepository(ABC):
    @abstractmethod
    async def get_by_id(self, session_id: str) -> Optional[ParkingSession]:
        pass

    @abstractmethod
    async def get_active_session_for_driver(self, driver_id: str) -> Optional[ParkingSession]:
        pass

    @abstractmethod
    async def add(self, session: ParkingSession) -> ParkingSession:
        pass

    @abstractmethod
    async def update(self, session: ParkingSession) -> ParkingSession:
        pass

    @abstractmethod
    async def complete(self, session_id: str, exit_time: datetime) -> Optional[ParkingSession]:
        """Move an ACTIVE session to COMPLETED.

        Returns None when the session was no longer ACTIVE, so that exactly one
        of several concurrent exit events wins.
        """
        pass

    @abstractmethod
    async def get_active_sessions(self, lot_id: Optional[str] = None) -> List[ParkingSession]:
        pass

    @abstractmethod
    async def count_active_for_lot(self, lot_id: str) -> int:
        pass

    @abstractmethod
    async def get_completed_for_driver_between(
        self, driver_id: str, start: datetime, end: datetime
    ) -> List[ParkingSession]:
        pass

    @abstractmethod
    async def get_sessions_between(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, lot_id: Optional[str] = None
    ) -> List[ParkingSession]:
        pass


class AbstractInvoiceRepository(ABC):
    @abstractmethod
    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_for_month(self, driver_id: str, month: int, year: int) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def upsert(self, invoice: Invoice) -> Invoice:
        """Insert a new invoice or write back an existing one.

        Existing invoices are written with a compare-and-swap on ``version``;
        StoreConflict is raised when the stored version moved on, or when a
        concurrent insert already created the (driver, month, year) invoice.
        """
        pass

    @abstractmethod
    async def get_history(self, driver_id: str, limit: int = 6) -> List[Invoice]:
        pass


class AbstractPricingTierRepository(ABC):
    @abstractmethod
    async def get_by_membership(self, membership_type: str) -> Optional[PricingTier]:
        pass
