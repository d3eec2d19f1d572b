from datetime import datetime
from typing import List, Optional
from loguru import logger

from vaultpark.application.repositories import AbstractParkingLotRepository, AbstractParkingSessionRepository
from vaultpark.application.services.capacity_ledger import CapacityLedger
from vaultpark.application.services.invoice_service import InvoiceService
from vaultpark.domain.common import LotStatus, SessionStatus
from vaultpark.domain.entities import Invoice, ParkingSession
from vaultpark.domain.errors import (
    AlreadyCompleted,
    DuplicateActiveSession,
    LotInactive,
    LotNotFound,
    SessionNotFound,
    VaultParkError,
)
from vaultpark.shared.utils import utc_now


class SessionClosure:
    def __init__(self, session: ParkingSession, invoice: Optional[Invoice] = None):
        self.session = session
        self.invoice = invoice


class SessionService:
    """Parking session lifecycle: NONE -> ACTIVE -> COMPLETED."""

    def __init__(
        self,
        parking_session_repo: AbstractParkingSessionRepository,
        lot_repo: AbstractParkingLotRepository,
        ledger: CapacityLedger,
        invoice_service: InvoiceService,
    ):
        self.parking_session_repo = parking_session_repo
        self.lot_repo = lot_repo
        self.ledger = ledger
        self.invoice_service = invoice_service

    async def open_session(
        self,
        driver_id: str,
        vehicle_number: str,
        lot_id: str,
        gate_location: str = "",
        driver_name: str = "",
        notes: str = "",
        now: Optional[datetime] = None,
    ) -> ParkingSession:
        existing = await self.parking_session_repo.get_active_session_for_driver(driver_id)
        if existing:
            raise DuplicateActiveSession(f"Driver {driver_id} already has active session {existing.id}")

        lot = await self.lot_repo.get_by_id(lot_id)
        if lot is None:
            raise LotNotFound(f"Parking lot {lot_id} not found")
        if lot.status != LotStatus.ACTIVE:
            raise LotInactive(f"Parking lot {lot_id} is {lot.status.value}")

        # Reserve the space first so a full lot (reject policy) never gets a session.
        await self.ledger.reserve(lot_id)

        session = ParkingSession(
            driver_id=driver_id,
            driver_name=driver_name,
            vehicle_number=vehicle_number,
            lot_id=lot_id,
            gate_location=gate_location,
            entry_time=now or utc_now(),
            status=SessionStatus.ACTIVE,
            notes=notes,
        )
        try:
            new_session = await self.parking_session_repo.add(session)
        except Exception:
            logger.error(f"Session create failed for driver {driver_id}, releasing space on lot {lot_id}")
            try:
                await self.ledger.release(lot_id)
            except VaultParkError as release_error:
                logger.error(f"Compensation failed, lot {lot_id} needs reconciliation: {release_error}")
            raise

        logger.info(f"Driver {driver_id} ({vehicle_number}) entered lot {lot_id} at gate '{gate_location}'")
        return new_session

    async def close_session(
        self,
        session_id: str,
        membership_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SessionClosure:
        session = await self.parking_session_repo.get_by_id(session_id)
        if session is None:
            raise SessionNotFound(f"Parking session {session_id} not found")
        if not session.is_active:
            raise AlreadyCompleted(f"Parking session {session_id} already completed")

        completed = await self.parking_session_repo.complete(session_id, now or utc_now())
        if completed is None:
            raise AlreadyCompleted(f"Parking session {session_id} was completed by another exit event")
        session = completed
        logger.info(f"Driver {session.driver_id} left lot {session.lot_id}, session {session_id} completed")

        # Past this point the session stays completed; later failures are logged for reconciliation.
        try:
            await self.ledger.release(session.lot_id)
        except VaultParkError as e:
            logger.error(f"Capacity release failed for session {session_id} on lot {session.lot_id}: {e}")

        invoice = None
        try:
            tier = await self.invoice_service.resolve_tier(membership_type)
            invoice = await self.invoice_service.fold_session(session, tier)
        except VaultParkError as e:
            logger.error(f"Billing failed for session {session_id}, needs invoice reconciliation: {e}")

        return SessionClosure(session=session, invoice=invoice)

    async def add_note(self, session_id: str, note: str) -> ParkingSession:
        session = await self.parking_session_repo.get_by_id(session_id)
        if session is None:
            raise SessionNotFound(f"Parking session {session_id} not found")
        session.notes = f"{session.notes}\n{note}".strip() if session.notes else note
        return await self.parking_session_repo.update(session)

    async def get_session(self, session_id: str) -> ParkingSession:
        session = await self.parking_session_repo.get_by_id(session_id)
        if session is None:
            raise SessionNotFound(f"Parking session {session_id} not found")
        return session

    async def get_active_session(self, driver_id: str) -> Optional[ParkingSession]:
        return await self.parking_session_repo.get_active_session_for_driver(driver_id)

    async def list_active_sessions(self, lot_id: Optional[str] = None) -> List[ParkingSession]:
        return await self.parking_session_repo.get_active_sessions(lot_id)
