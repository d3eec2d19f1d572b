from typing import Optional
from loguru import logger

from vaultpark.application.repositories import AbstractParkingLotRepository
from vaultpark.config.settings_env import settings
from vaultpark.domain.entities import ParkingLot
from vaultpark.domain.errors import CapacityExceeded
from vaultpark.shared.utils import retry_transient

ENTRY = -1
EXIT = +1


class CapacityLedger:
    """Keeps ``available_spaces`` of each lot inside ``[0, total_spaces]``.

    Every change goes through the repository's compare-and-swap, so concurrent
    gates on the same lot serialize on that lot's row only.
    """

    def __init__(self, lot_repo: AbstractParkingLotRepository, policy: Optional[str] = None):
        self.lot_repo = lot_repo
        self.policy = policy or settings.CAPACITY_POLICY

    def _apply(self, lot: ParkingLot, delta: int) -> None:
        target = lot.available_spaces + delta
        if target < 0 and self.policy == "reject":
            raise CapacityExceeded(f"Parking lot {lot.id} is full ({lot.total_spaces} spaces)")
        if target < 0 or target > lot.total_spaces:
            logger.warning(
                f"Clamping availability of lot {lot.id}: {lot.available_spaces}{delta:+d} "
                f"outside [0, {lot.total_spaces}]"
            )
        lot.available_spaces = max(0, min(lot.total_spaces, target))

    async def adjust_availability(self, lot_id: str, delta: int) -> ParkingLot:
        if delta == 0:
            raise ValueError("delta must be non-zero")

        lot = await retry_transient(
            lambda: self.lot_repo.cas_update(lot_id, lambda current: self._apply(current, delta)),
            description=f"capacity adjust on lot {lot_id}",
        )
        logger.debug(f"Lot {lot_id} availability {delta:+d} -> {lot.available_spaces}/{lot.total_spaces}")
        return lot

    async def reserve(self, lot_id: str) -> ParkingLot:
        return await self.adjust_availability(lot_id, ENTRY)

    async def release(self, lot_id: str) -> ParkingLot:
        return await self.adjust_availability(lot_id, EXIT)
