import asyncio
import random
import pytest

from vaultpark.application.repositories import AbstractParkingLotRepository
from vaultpark.application.services.capacity_ledger import CapacityLedger, ENTRY, EXIT
from vaultpark.domain.common import LotStatus
from vaultpark.domain.entities import ParkingLot
from vaultpark.domain.errors import CapacityExceeded, LotNotFound, StoreConflict


class InMemoryLotRepository(AbstractParkingLotRepository):
    """Versioned lot store that yields between read and write, so interleaved writers conflict."""

    def __init__(self, *lots: ParkingLot):
        self.lots = {lot.id: lot for lot in lots}
        self.conflicts = 0

    def _copy(self, lot: ParkingLot) -> ParkingLot:
        return ParkingLot(**vars(lot))

    async def get_by_id(self, lot_id):
        lot = self.lots.get(lot_id)
        return self._copy(lot) if lot else None

    async def get_by_owner(self, owner_id):
        return next((self._copy(lot) for lot in self.lots.values() if lot.owner_id == owner_id), None)

    async def add(self, lot):
        self.lots[lot.id] = self._copy(lot)
        return lot

    async def cas_update(self, lot_id, mutator):
        if lot_id not in self.lots:
            raise LotNotFound(lot_id)
        working = self._copy(self.lots[lot_id])
        expected_version = working.version
        await asyncio.sleep(0)
        mutator(working)
        if self.lots[lot_id].version != expected_version:
            self.conflicts += 1
            raise StoreConflict(f"lot {lot_id} moved past version {expected_version}")
        working.version = expected_version + 1
        self.lots[lot_id] = working
        return self._copy(working)

    async def get_all_active(self):
        return [self._copy(lot) for lot in self.lots.values() if lot.status == LotStatus.ACTIVE]

    async def delete(self, lot_id):
        self.lots.pop(lot_id)


def small_lot(available=3, total=3):
    return ParkingLot(
        id="lot-1", owner_id="guard-1", name="Annex", location="", total_spaces=total,
        hourly_rate=5.0, available_spaces=available,
    )


class TestCapacityLedgerInMemory:
    async def test_reserve_and_release(self):
        repo = InMemoryLotRepository(small_lot())
        ledger = CapacityLedger(repo, policy="clamp")

        assert (await ledger.reserve("lot-1")).available_spaces == 2
        assert (await ledger.release("lot-1")).available_spaces == 3

    async def test_clamps_at_zero_when_full(self):
        repo = InMemoryLotRepository(small_lot(available=0))
        lot = await CapacityLedger(repo, policy="clamp").reserve("lot-1")
        assert lot.available_spaces == 0

    async def test_clamps_at_total_when_empty(self):
        repo = InMemoryLotRepository(small_lot(available=3))
        lot = await CapacityLedger(repo, policy="clamp").release("lot-1")
        assert lot.available_spaces == 3

    async def test_reject_policy_refuses_a_full_lot(self):
        repo = InMemoryLotRepository(small_lot(available=0))
        with pytest.raises(CapacityExceeded):
            await CapacityLedger(repo, policy="reject").reserve("lot-1")
        assert repo.lots["lot-1"].version == 0

    async def test_reject_policy_still_clamps_releases(self):
        repo = InMemoryLotRepository(small_lot(available=3))
        lot = await CapacityLedger(repo, policy="reject").release("lot-1")
        assert lot.available_spaces == 3

    async def test_unknown_lot(self):
        with pytest.raises(LotNotFound):
            await CapacityLedger(InMemoryLotRepository()).reserve("missing")

    async def test_zero_delta_is_rejected(self):
        with pytest.raises(ValueError):
            await CapacityLedger(InMemoryLotRepository(small_lot())).adjust_availability("lot-1", 0)

    @pytest.mark.parametrize("seed", range(5))
    async def test_availability_stays_in_bounds(self, seed):
        rng = random.Random(seed)
        repo = InMemoryLotRepository(small_lot(available=3, total=3))
        ledger = CapacityLedger(repo, policy="clamp")

        for _ in range(40):
            lot = await ledger.adjust_availability("lot-1", rng.choice([ENTRY, EXIT]))
            assert 0 <= lot.available_spaces <= lot.total_spaces

    async def test_concurrent_gates_are_serialized_by_retries(self):
        repo = InMemoryLotRepository(small_lot(available=3, total=3))
        ledger = CapacityLedger(repo, policy="clamp")

        results = await asyncio.gather(
            ledger.reserve("lot-1"), ledger.reserve("lot-1"), return_exceptions=True
        )

        assert all(isinstance(r, ParkingLot) for r in results)
        assert repo.conflicts >= 1
        assert repo.lots["lot-1"].available_spaces == 1
        assert repo.lots["lot-1"].version == 2

    async def test_conflicts_surface_after_bounded_retries(self):
        repo = InMemoryLotRepository(small_lot())

        async def always_conflicts(lot_id, mutator):
            raise StoreConflict("busy")

        repo.cas_update = always_conflicts
        with pytest.raises(StoreConflict):
            await CapacityLedger(repo).reserve("lot-1")


class TestCapacityLedgerSQLAlchemy:
    async def test_reserve_persists(self, ledger, lot_repo, sample_lot):
        await ledger.reserve(sample_lot.id)
        await ledger.reserve(sample_lot.id)
        await ledger.release(sample_lot.id)

        stored = await lot_repo.get_by_id(sample_lot.id)
        assert stored.available_spaces == 9
        assert stored.version == 3

    async def test_cas_update_bumps_version(self, lot_repo, sample_lot):
        stale = await lot_repo.get_by_id(sample_lot.id)
        await lot_repo.cas_update(sample_lot.id, lambda lot: setattr(lot, "available_spaces", 5))

        assert (await lot_repo.get_by_id(sample_lot.id)).version == stale.version + 1

    async def test_reject_policy_on_full_stored_lot(self, lot_repo, sample_lot):
        await lot_repo.cas_update(sample_lot.id, lambda lot: setattr(lot, "available_spaces", 0))

        with pytest.raises(CapacityExceeded):
            await CapacityLedger(lot_repo, policy="reject").reserve(sample_lot.id)
        assert (await lot_repo.get_by_id(sample_lot.id)).available_spaces == 0

    async def test_unknown_stored_lot(self, ledger):
        with pytest.raises(LotNotFound):
            await ledger.release("no-such-lot")
