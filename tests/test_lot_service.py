import pytest
from datetime import datetime, timezone

from vaultpark.domain.common import LotStatus
from vaultpark.domain.errors import LotAlreadyExists, LotHasActiveSessions, LotNotFound


class TestCreateLot:
    async def test_new_lot_is_empty_and_active(self, sample_lot):
        assert sample_lot.id is not None
        assert sample_lot.available_spaces == sample_lot.total_spaces == 10
        assert sample_lot.status == LotStatus.ACTIVE
        assert sample_lot.version == 0

    async def test_one_lot_per_owner(self, lot_service, sample_lot):
        with pytest.raises(LotAlreadyExists):
            await lot_service.create_lot(
                owner_id="guard-1", name="Second", location="", total_spaces=5, hourly_rate=3.0
            )

    @pytest.mark.parametrize("spaces, rate", [(0, 5.0), (-3, 5.0), (10, -1.0)])
    async def test_invalid_lot(self, lot_service, spaces, rate):
        with pytest.raises(ValueError):
            await lot_service.create_lot(
                owner_id="guard-9", name="Broken", location="", total_spaces=spaces, hourly_rate=rate
            )

    async def test_lookup_by_owner(self, lot_service, sample_lot):
        assert (await lot_service.get_lot_for_owner("guard-1")).id == sample_lot.id
        assert await lot_service.get_lot_for_owner("nobody") is None


class TestUpdateLot:
    async def test_rename_and_reprice(self, lot_service, sample_lot):
        updated = await lot_service.update_lot(sample_lot.id, name="Central Garage B", hourly_rate=6.5)

        assert updated.name == "Central Garage B"
        assert updated.hourly_rate == 6.5
        assert updated.version == sample_lot.version + 1
        assert (await lot_service.get_lot(sample_lot.id)).name == "Central Garage B"

    async def test_resize_keeps_occupied_spaces(self, lot_service, session_service, sample_lot):
        now = datetime(2024, 5, 10, 9, tzinfo=timezone.utc)
        for driver in ("D1", "D2", "D3"):
            await session_service.open_session(driver, f"{driver}-CAR", sample_lot.id, now=now)

        grown = await lot_service.update_lot(sample_lot.id, total_spaces=15)
        assert (grown.total_spaces, grown.available_spaces) == (15, 12)
        assert (grown.occupied_spaces, grown.is_full) == (3, False)

        shrunk = await lot_service.update_lot(sample_lot.id, total_spaces=2)
        assert (shrunk.total_spaces, shrunk.available_spaces) == (2, 0)
        assert shrunk.is_full

    async def test_invalid_size(self, lot_service, sample_lot):
        with pytest.raises(ValueError):
            await lot_service.update_lot(sample_lot.id, total_spaces=0)

    async def test_unknown_lot(self, lot_service):
        with pytest.raises(LotNotFound):
            await lot_service.update_lot("no-such-lot", name="x")

    async def test_deactivate_hides_lot(self, lot_service, sample_lot):
        await lot_service.deactivate_lot(sample_lot.id)

        assert (await lot_service.get_lot(sample_lot.id)).status == LotStatus.INACTIVE
        assert await lot_service.list_active_lots() == []


class TestDeleteLot:
    async def test_delete_empty_lot(self, lot_service, sample_lot):
        await lot_service.delete_lot(sample_lot.id)

        with pytest.raises(LotNotFound):
            await lot_service.get_lot(sample_lot.id)

    async def test_lot_with_parked_cars_cannot_be_deleted(self, lot_service, session_service, sample_lot):
        await session_service.open_session("D1", "KA01", sample_lot.id)

        with pytest.raises(LotHasActiveSessions):
            await lot_service.delete_lot(sample_lot.id)

    async def test_delete_unknown_lot(self, lot_service):
        with pytest.raises(LotNotFound):
            await lot_service.delete_lot("no-such-lot")


async def test_list_active_lots_sorted_by_name(lot_service, sample_lot):
    await lot_service.create_lot(owner_id="guard-2", name="Airport Long Stay", location="", total_spaces=50, hourly_rate=2.0)

    assert [lot.name for lot in await lot_service.list_active_lots()] == ["Airport Long Stay", "Central Garage"]
