import asyncio
from typing import List, Optional
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, update, delete
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, PendingRollbackError
from loguru import logger

from vaultpark.domain.entities import ParkingLot, ParkingSession, PricingTier, Invoice
from vaultpark.domain.common import LotStatus, SessionStatus, InvoiceStatus
from vaultpark.domain.errors import DuplicateActiveSession, LotNotFound, SessionNotFound, StoreConflict, StoreTimeout
from vaultpark.infrastructure.persistence.models.models import (
    ParkingLot as ORMParkingLot,
    ParkingSession as ORMParkingSession,
    PricingTier as ORMPricingTier,
    Invoice as ORMInvoice,
)
from vaultpark.application.repositories import (
    AbstractParkingLotRepository,
    AbstractParkingSessionRepository,
    AbstractInvoiceRepository,
    AbstractPricingTierRepository,
    LotMutator,
)
from vaultpark.shared.utils import with_timeout


class _SQLAlchemyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _rollback(self):
        # Runs even if the caller is being cancelled
        await asyncio.shield(self.session.rollback())

    async def _run(self, awaitable):
        """Await a store call, leaving the session usable for a retry when it fails.

        IntegrityError is passed through for the caller to interpret; other
        driver errors become StoreTimeout or StoreConflict.
        """
        try:
            return await with_timeout(awaitable)
        except IntegrityError:
            raise
        except StoreTimeout:
            logger.warning("Store call timed out, rolling back the session")
            await self._rollback()
            raise
        except OperationalError as e:
            await self._rollback()
            raise StoreTimeout(f"Store unavailable: {e.orig}") from e
        except (DBAPIError, PendingRollbackError) as e:
            await self._rollback()
            raise StoreConflict(f"Store transaction aborted: {e}") from e

    async def _execute(self, statement):
        return await self._run(self.session.execute(statement))

    async def _commit(self):
        await self._run(self.session.commit())


def _to_lot(orm_lot: ORMParkingLot) -> ParkingLot:
    return ParkingLot(
        id=orm_lot.id,
        owner_id=orm_lot.owner_id,
        owner_name=orm_lot.owner_name,
        name=orm_lot.name,
        location=orm_lot.location,
        latitude=orm_lot.latitude,
        longitude=orm_lot.longitude,
        total_spaces=orm_lot.total_spaces,
        available_spaces=orm_lot.available_spaces,
        hourly_rate=orm_lot.hourly_rate,
        daily_cap=orm_lot.daily_cap,
        status=LotStatus(orm_lot.status),
        version=orm_lot.version,
    )


def _to_session(orm_session: ORMParkingSession) -> ParkingSession:
    return ParkingSession(
        id=orm_session.id,
        driver_id=orm_session.driver_id,
        driver_name=orm_session.driver_name,
        vehicle_number=orm_session.vehicle_number,
        lot_id=orm_session.lot_id,
        gate_location=orm_session.gate_location,
        entry_time=orm_session.entry_time,
        exit_time=orm_session.exit_time,
        status=SessionStatus(orm_session.status),
        notes=orm_session.notes or "",
    )


def _to_invoice(orm_invoice: ORMInvoice) -> Invoice:
    return Invoice(
        id=orm_invoice.id,
        driver_id=orm_invoice.driver_id,
        driver_name=orm_invoice.driver_name,
        month=orm_invoice.month,
        year=orm_invoice.year,
        total_sessions=orm_invoice.total_sessions,
        total_hours=orm_invoice.total_hours,
        total_amount=orm_invoice.total_amount,
        session_ids=orm_invoice.session_ids or [],
        status=InvoiceStatus(orm_invoice.status),
        due_date=orm_invoice.due_date,
        is_overdue=bool(orm_invoice.is_overdue),
        days_overdue=orm_invoice.days_overdue,
        overdue_amount=orm_invoice.overdue_amount,
        paid_at=orm_invoice.paid_at,
        version=orm_invoice.version,
    )


def _invoice_values(invoice: Invoice) -> dict:
    return {
        "driver_name": invoice.driver_name,
        "total_sessions": invoice.total_sessions,
        "total_hours": invoice.total_hours,
        "total_amount": invoice.total_amount,
        "session_ids": sorted(invoice.session_ids),
        "status": invoice.status.value,
        "due_date": invoice.due_date,
        "is_overdue": invoice.is_overdue,
        "days_overdue": invoice.days_overdue,
        "overdue_amount": invoice.overdue_amount,
        "paid_at": invoice.paid_at,
    }


class SQLAlchemyParkingLotRepository(_SQLAlchemyRepository, AbstractParkingLotRepository):
    async def _load(self, lot_id: str) -> Optional[ORMParkingLot]:
        result = await self._execute(
            select(ORMParkingLot)
            .where(ORMParkingLot.id == lot_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_by_id(self, lot_id: str) -> Optional[ParkingLot]:
        orm_lot = await self._load(lot_id)
        return _to_lot(orm_lot) if orm_lot else None

    async def get_by_owner(self, owner_id: str) -> Optional[ParkingLot]:
        result = await self._execute(
            select(ORMParkingLot)
            .where(ORMParkingLot.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        orm_lot = result.scalars().first()
        return _to_lot(orm_lot) if orm_lot else None

    async def add(self, lot: ParkingLot) -> ParkingLot:
        orm_lot = ORMParkingLot(
            owner_id=lot.owner_id,
            owner_name=lot.owner_name,
            name=lot.name,
            location=lot.location,
            latitude=lot.latitude,
            longitude=lot.longitude,
            total_spaces=lot.total_spaces,
            available_spaces=lot.available_spaces,
            hourly_rate=lot.hourly_rate,
            daily_cap=lot.daily_cap,
            status=lot.status.value,
            version=0,
        )
        if lot.id:
            orm_lot.id = lot.id
        self.session.add(orm_lot)
        try:
            await self._run(self.session.flush())
            await self._commit()
        except IntegrityError as e:
            await self._rollback()
            raise StoreConflict(f"Parking lot for owner {lot.owner_id} already exists") from e
        return _to_lot(orm_lot)

    async def cas_update(self, lot_id: str, mutator: LotMutator) -> ParkingLot:
        orm_lot = await self._load(lot_id)
        if orm_lot is None:
            raise LotNotFound(f"Parking lot {lot_id} not found")

        lot = _to_lot(orm_lot)
        expected_version = lot.version
        mutator(lot)

        result = await self._execute(
            update(ORMParkingLot)
            .where(and_(ORMParkingLot.id == lot_id, ORMParkingLot.version == expected_version))
            .values(
                owner_name=lot.owner_name,
                name=lot.name,
                location=lot.location,
                latitude=lot.latitude,
                longitude=lot.longitude,
                total_spaces=lot.total_spaces,
                available_spaces=lot.available_spaces,
                hourly_rate=lot.hourly_rate,
                daily_cap=lot.daily_cap,
                status=lot.status.value,
                version=expected_version + 1,
            )
        )
        if result.rowcount != 1:
            await self._rollback()
            raise StoreConflict(f"Parking lot {lot_id} changed concurrently (version {expected_version})")

        await self._commit()
        lot.version = expected_version + 1
        return lot

    async def get_all_active(self) -> List[ParkingLot]:
        result = await self._execute(
            select(ORMParkingLot)
            .where(ORMParkingLot.status == LotStatus.ACTIVE.value)
            .order_by(ORMParkingLot.name)
            .execution_options(populate_existing=True)
        )
        return [_to_lot(lot) for lot in result.scalars().all()]

    async def delete(self, lot_id: str) -> None:
        result = await self._execute(delete(ORMParkingLot).where(ORMParkingLot.id == lot_id))
        if result.rowcount == 0:
            raise LotNotFound(f"Parking lot {lot_id} not found")
        await self._commit()


class SQLAlchemyParkingSessionRepository(_SQLAlchemyRepository, AbstractParkingSessionRepository):
    async def get_by_id(self, session_id: str) -> Optional[ParkingSession]:
        result = await self._execute(
            select(ORMParkingSession)
            .where(ORMParkingSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        orm_session = result.scalars().first()
        return _to_session(orm_session) if orm_session else None

    async def get_active_session_for_driver(self, driver_id: str) -> Optional[ParkingSession]:
        result = await self._execute(
            select(ORMParkingSession).where(
                and_(
                    ORMParkingSession.driver_id == driver_id,
                    ORMParkingSession.status == SessionStatus.ACTIVE.value,
                )
            ).order_by(ORMParkingSession.entry_time.desc())
            .execution_options(populate_existing=True)
        )
        orm_session = result.scalars().first()
        return _to_session(orm_session) if orm_session else None

    async def add(self, session: ParkingSession) -> ParkingSession:
        orm_session = ORMParkingSession(
            driver_id=session.driver_id,
            driver_name=session.driver_name,
            vehicle_number=session.vehicle_number,
            lot_id=session.lot_id,
            gate_location=session.gate_location,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            status=session.status.value,
            notes=session.notes,
        )
        self.session.add(orm_session)
        try:
            await self._run(self.session.flush())
            await self._commit()
        except IntegrityError as e:
            await self._rollback()
            raise DuplicateActiveSession(f"Driver {session.driver_id} already has an active session") from e
        return _to_session(orm_session)

    async def update(self, session: ParkingSession) -> ParkingSession:
        orm_session = await self._run(self.session.get(ORMParkingSession, session.id))
        if orm_session is None:
            raise SessionNotFound(f"Parking session {session.id} not found")

        orm_session.exit_time = session.exit_time
        orm_session.status = session.status.value
        orm_session.notes = session.notes
        await self._run(self.session.flush())
        await self._commit()
        return _to_session(orm_session)

    async def complete(self, session_id: str, exit_time: datetime) -> Optional[ParkingSession]:
        result = await self._execute(
            update(ORMParkingSession)
            .where(
                and_(
                    ORMParkingSession.id == session_id,
                    ORMParkingSession.status == SessionStatus.ACTIVE.value,
                )
            )
            .values(exit_time=exit_time, status=SessionStatus.COMPLETED.value)
        )
        if result.rowcount != 1:
            await self._rollback()
            return None
        await self._commit()
        return await self.get_by_id(session_id)

    async def get_active_sessions(self, lot_id: Optional[str] = None) -> List[ParkingSession]:
        query = select(ORMParkingSession).where(ORMParkingSession.status == SessionStatus.ACTIVE.value)
        if lot_id is not None:
            query = query.where(ORMParkingSession.lot_id == lot_id)
        result = await self._execute(query.order_by(ORMParkingSession.entry_time.desc()))
        return [_to_session(s) for s in result.scalars().all()]

    async def count_active_for_lot(self, lot_id: str) -> int:
        result = await self._execute(
            select(func.count(ORMParkingSession.id)).where(
                and_(
                    ORMParkingSession.lot_id == lot_id,
                    ORMParkingSession.status == SessionStatus.ACTIVE.value,
                )
            )
        )
        return result.scalar() or 0

    async def get_completed_for_driver_between(
        self, driver_id: str, start: datetime, end: datetime
    ) -> List[ParkingSession]:
        result = await self._execute(
            select(ORMParkingSession).where(
                and_(
                    ORMParkingSession.driver_id == driver_id,
                    ORMParkingSession.status == SessionStatus.COMPLETED.value,
                    ORMParkingSession.entry_time >= start,
                    ORMParkingSession.entry_time < end,
                )
            ).order_by(ORMParkingSession.entry_time)
        )
        return [_to_session(s) for s in result.scalars().all()]

    async def get_sessions_between(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, lot_id: Optional[str] = None
    ) -> List[ParkingSession]:
        conditions = []
        if start is not None:
            conditions.append(ORMParkingSession.entry_time >= start)
        if end is not None:
            conditions.append(ORMParkingSession.entry_time < end)
        if lot_id is not None:
            conditions.append(ORMParkingSession.lot_id == lot_id)

        query = select(ORMParkingSession)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self._execute(query.order_by(ORMParkingSession.entry_time))
        return [_to_session(s) for s in result.scalars().all()]


class SQLAlchemyInvoiceRepository(_SQLAlchemyRepository, AbstractInvoiceRepository):
    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        result = await self._execute(
            select(ORMInvoice)
            .where(ORMInvoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        orm_invoice = result.scalars().first()
        return _to_invoice(orm_invoice) if orm_invoice else None

    async def get_for_month(self, driver_id: str, month: int, year: int) -> Optional[Invoice]:
        result = await self._execute(
            select(ORMInvoice).where(
                and_(
                    ORMInvoice.driver_id == driver_id,
                    ORMInvoice.month == month,
                    ORMInvoice.year == year,
                )
            ).execution_options(populate_existing=True)
        )
        orm_invoice = result.scalars().first()
        return _to_invoice(orm_invoice) if orm_invoice else None

    async def upsert(self, invoice: Invoice) -> Invoice:
        if invoice.id is None:
            return await self._insert(invoice)

        result = await self._execute(
            update(ORMInvoice)
            .where(and_(ORMInvoice.id == invoice.id, ORMInvoice.version == invoice.version))
            .values(version=invoice.version + 1, **_invoice_values(invoice))
        )
        if result.rowcount != 1:
            await self._rollback()
            raise StoreConflict(f"Invoice {invoice.id} changed concurrently (version {invoice.version})")

        await self._commit()
        return invoice.copy(version=invoice.version + 1)

    async def _insert(self, invoice: Invoice) -> Invoice:
        orm_invoice = ORMInvoice(
            driver_id=invoice.driver_id,
            month=invoice.month,
            year=invoice.year,
            version=0,
            **_invoice_values(invoice),
        )
        self.session.add(orm_invoice)
        try:
            await self._run(self.session.flush())
            await self._commit()
        except IntegrityError as e:
            await self._rollback()
            raise StoreConflict(
                f"Invoice for {invoice.driver_id} {invoice.month}/{invoice.year} was created concurrently"
            ) from e
        return _to_invoice(orm_invoice)

    async def get_history(self, driver_id: str, limit: int = 6) -> List[Invoice]:
        result = await self._execute(
            select(ORMInvoice)
            .where(ORMInvoice.driver_id == driver_id)
            .order_by(ORMInvoice.year.desc(), ORMInvoice.month.desc())
            .limit(limit)
        )
        return [_to_invoice(i) for i in result.scalars().all()]


class SQLAlchemyPricingTierRepository(_SQLAlchemyRepository, AbstractPricingTierRepository):
    async def get_by_membership(self, membership_type: str) -> Optional[PricingTier]:
        orm_tier = await self._run(self.session.get(ORMPricingTier, membership_type.upper()))
        if orm_tier:
            return PricingTier(
                membership_type=orm_tier.membership_type,
                hourly_rate=orm_tier.hourly_rate,
                daily_cap=orm_tier.daily_cap,
                monthly_unlimited_threshold=orm_tier.monthly_unlimited_threshold,
            )
        return None
