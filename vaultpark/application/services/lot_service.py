from typing import List, Optional
from loguru import logger

from vaultpark.application.repositories import AbstractParkingLotRepository, AbstractParkingSessionRepository
from vaultpark.domain.common import LotStatus
from vaultpark.domain.entities import ParkingLot
from vaultpark.domain.errors import LotAlreadyExists, LotHasActiveSessions, LotNotFound, StoreConflict
from vaultpark.shared.utils import retry_transient


class LotService:
    """Operator-side lot administration. One lot per owner."""

    def __init__(
        self,
        lot_repo: AbstractParkingLotRepository,
        parking_session_repo: AbstractParkingSessionRepository,
    ):
        self.lot_repo = lot_repo
        self.parking_session_repo = parking_session_repo

    async def create_lot(
        self,
        owner_id: str,
        name: str,
        location: str,
        total_spaces: int,
        hourly_rate: float,
        daily_cap: Optional[float] = None,
        owner_name: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
    ) -> ParkingLot:
        if total_spaces <= 0:
            raise ValueError("total_spaces must be positive")
        if hourly_rate < 0:
            raise ValueError("hourly_rate must not be negative")

        if await self.lot_repo.get_by_owner(owner_id):
            raise LotAlreadyExists(f"Owner {owner_id} already has a parking lot")

        lot = ParkingLot(
            owner_id=owner_id,
            owner_name=owner_name,
            name=name,
            location=location,
            latitude=latitude,
            longitude=longitude,
            total_spaces=total_spaces,
            available_spaces=total_spaces,
            hourly_rate=hourly_rate,
            daily_cap=daily_cap,
            status=LotStatus.ACTIVE,
        )
        try:
            lot = await self.lot_repo.add(lot)
        except StoreConflict as e:
            raise LotAlreadyExists(f"Owner {owner_id} already has a parking lot") from e

        logger.info(f"Parking lot {lot.id} '{name}' created for owner {owner_id} with {total_spaces} spaces")
        return lot

    async def update_lot(
        self,
        lot_id: str,
        name: Optional[str] = None,
        location: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        total_spaces: Optional[int] = None,
        hourly_rate: Optional[float] = None,
        daily_cap: Optional[float] = None,
        status: Optional[LotStatus] = None,
    ) -> ParkingLot:
        if total_spaces is not None and total_spaces <= 0:
            raise ValueError("total_spaces must be positive")

        def apply(lot: ParkingLot) -> None:
            if name is not None:
                lot.name = name
            if location is not None:
                lot.location = location
            if latitude is not None:
                lot.latitude = latitude
            if longitude is not None:
                lot.longitude = longitude
            if hourly_rate is not None:
                lot.hourly_rate = hourly_rate
            if daily_cap is not None:
                lot.daily_cap = daily_cap
            if status is not None:
                lot.status = status
            if total_spaces is not None:
                # Occupied spaces stay occupied when the lot is resized
                shifted = lot.available_spaces + (total_spaces - lot.total_spaces)
                lot.total_spaces = total_spaces
                lot.available_spaces = max(0, min(total_spaces, shifted))

        lot = await retry_transient(
            lambda: self.lot_repo.cas_update(lot_id, apply), description=f"update of lot {lot_id}"
        )
        logger.info(f"Parking lot {lot_id} updated")
        return lot

    async def deactivate_lot(self, lot_id: str) -> ParkingLot:
        return await self.update_lot(lot_id, status=LotStatus.INACTIVE)

    async def delete_lot(self, lot_id: str) -> None:
        if await self.lot_repo.get_by_id(lot_id) is None:
            raise LotNotFound(f"Parking lot {lot_id} not found")

        active = await self.parking_session_repo.count_active_for_lot(lot_id)
        if active:
            raise LotHasActiveSessions(f"Parking lot {lot_id} has {active} active sessions")

        await self.lot_repo.delete(lot_id)
        logger.info(f"Parking lot {lot_id} deleted")

    async def get_lot(self, lot_id: str) -> ParkingLot:
        lot = await self.lot_repo.get_by_id(lot_id)
        if lot is None:
            raise LotNotFound(f"Parking lot {lot_id} not found")
        return lot

    async def get_lot_for_owner(self, owner_id: str) -> Optional[ParkingLot]:
        return await self.lot_repo.get_by_owner(owner_id)

    async def list_active_lots(self) -> List[ParkingLot]:
        return await self.lot_repo.get_all_active()
