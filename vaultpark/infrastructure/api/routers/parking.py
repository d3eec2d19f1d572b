from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from vaultpark.application.services.analytics_service import AnalyticsService
from vaultpark.application.services.capacity_ledger import CapacityLedger
from vaultpark.application.services.invoice_service import InvoiceService
from vaultpark.application.services.lot_service import LotService
from vaultpark.application.services.scan_service import ScanService
from vaultpark.application.services.session_service import SessionService
from vaultpark.config.settings_env import settings
from vaultpark.domain import errors
from vaultpark.domain.reports import DateFilter
from vaultpark.infrastructure.api.schemas.parking import (
    TokenRequest, TokenResponse, ScanRequest, ScanResponse,
    ParkingLotCreate, ParkingLotUpdate, ParkingLotResponse,
    ParkingSessionResponse, SessionNote, CloseSessionRequest, CloseSessionResponse,
    InvoiceResponse, RecomputeRequest,
)
from vaultpark.infrastructure.persistence.database import get_async_db
from vaultpark.infrastructure.persistence.sqlalchemy_repositories import (
    SQLAlchemyParkingLotRepository,
    SQLAlchemyParkingSessionRepository,
    SQLAlchemyInvoiceRepository,
    SQLAlchemyPricingTierRepository,
)

router = APIRouter(prefix="/api/vaultpark", tags=["vaultpark"])

_STATUS_BY_ERROR = [
    (errors.TokenError, 400),
    (errors.LotNotFound, 404),
    (errors.SessionNotFound, 404),
    (errors.InvoiceNotFound, 404),
    (errors.VehicleMismatch, 400),
    (errors.StoreTimeout, 503),
    (errors.BillingError, 409),
    (errors.SessionError, 409),
    (errors.LotError, 409),
    (errors.StoreError, 409),
]


def to_http_error(error: errors.VaultParkError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail={"kind": error.kind, "message": error.user_message})
    return HTTPException(status_code=500, detail={"kind": error.kind, "message": error.user_message})


class Services:
    def __init__(self, db: AsyncSession):
        lot_repo = SQLAlchemyParkingLotRepository(db)
        session_repo = SQLAlchemyParkingSessionRepository(db)
        self.invoices = InvoiceService(
            invoice_repo=SQLAlchemyInvoiceRepository(db),
            parking_session_repo=session_repo,
            pricing_tier_repo=SQLAlchemyPricingTierRepository(db),
        )
        self.sessions = SessionService(
            parking_session_repo=session_repo,
            lot_repo=lot_repo,
            ledger=CapacityLedger(lot_repo),
            invoice_service=self.invoices,
        )
        self.scans = ScanService(self.sessions)
        self.lots = LotService(lot_repo=lot_repo, parking_session_repo=session_repo)
        self.analytics = AnalyticsService(session_repo)


def get_services(db: AsyncSession = Depends(get_async_db)) -> Services:
    return Services(db)


@router.post("/tokens", response_model=TokenResponse)
async def issue_token(request: TokenRequest, services: Services = Depends(get_services)):
    try:
        token = services.scans.issue_token(request.driver_id, request.vehicle_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TokenResponse(token=token, expires_in_millis=settings.TOKEN_TTL_MILLIS)


@router.post("/scans", response_model=ScanResponse)
async def process_scan(request: ScanRequest, services: Services = Depends(get_services)):
    return await services.scans.process_scan(
        token=request.token,
        lot_id=request.lot_id,
        gate_location=request.gate_location,
        driver_name=request.driver_name,
        membership_type=request.membership_type,
    )


@router.post("/sessions/{session_id}/close", response_model=CloseSessionResponse)
async def close_session(
    session_id: str,
    request: Optional[CloseSessionRequest] = None,
    services: Services = Depends(get_services)
):
    try:
        closure = await services.sessions.close_session(
            session_id, membership_type=request.membership_type if request else None
        )
    except errors.VaultParkError as e:
        raise to_http_error(e)
    return CloseSessionResponse(
        session=ParkingSessionResponse.model_validate(closure.session),
        invoice=InvoiceResponse.model_validate(closure.invoice) if closure.invoice else None,
    )


@router.post("/sessions/{session_id}/notes", response_model=ParkingSessionResponse)
async def add_session_note(session_id: str, request: SessionNote, services: Services = Depends(get_services)):
    try:
        return await services.sessions.add_note(session_id, request.note)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.get("/sessions/active", response_model=List[ParkingSessionResponse])
async def get_active_sessions(lot_id: Optional[str] = None, services: Services = Depends(get_services)):
    return await services.sessions.list_active_sessions(lot_id)


@router.post("/lots", response_model=ParkingLotResponse)
async def create_lot(request: ParkingLotCreate, services: Services = Depends(get_services)):
    try:
        return await services.lots.create_lot(**request.model_dump())
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.get("/lots", response_model=List[ParkingLotResponse])
async def list_active_lots(services: Services = Depends(get_services)):
    return await services.lots.list_active_lots()


@router.get("/lots/{lot_id}", response_model=ParkingLotResponse)
async def get_lot(lot_id: str, services: Services = Depends(get_services)):
    try:
        return await services.lots.get_lot(lot_id)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.patch("/lots/{lot_id}", response_model=ParkingLotResponse)
async def update_lot(lot_id: str, request: ParkingLotUpdate, services: Services = Depends(get_services)):
    try:
        return await services.lots.update_lot(lot_id, **request.model_dump(exclude_none=True))
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.delete("/lots/{lot_id}", status_code=204)
async def delete_lot(lot_id: str, services: Services = Depends(get_services)):
    try:
        await services.lots.delete_lot(lot_id)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.get("/invoices/{driver_id}/{year}/{month}", response_model=InvoiceResponse)
async def get_invoice(driver_id: str, year: int, month: int, services: Services = Depends(get_services)):
    invoice = await services.invoices.get_invoice(driver_id, month, year)
    if invoice is None:
        raise to_http_error(errors.InvoiceNotFound())
    return invoice


@router.get("/invoices/{driver_id}", response_model=List[InvoiceResponse])
async def get_invoice_history(driver_id: str, limit: int = 6, services: Services = Depends(get_services)):
    return await services.invoices.invoice_history(driver_id, limit)


@router.post("/invoices/recompute", response_model=InvoiceResponse)
async def recompute_invoice(request: RecomputeRequest, services: Services = Depends(get_services)):
    try:
        tier = await services.invoices.resolve_tier(request.membership_type)
        return await services.invoices.recompute_invoice(request.driver_id, request.month, request.year, tier)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.post("/invoices/{invoice_id}/overdue", response_model=InvoiceResponse)
async def refresh_overdue(invoice_id: str, services: Services = Depends(get_services)):
    try:
        return await services.invoices.refresh_overdue(invoice_id)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.post("/invoices/{invoice_id}/paid", response_model=InvoiceResponse)
async def mark_invoice_paid(invoice_id: str, services: Services = Depends(get_services)):
    try:
        return await services.invoices.mark_paid(invoice_id)
    except errors.VaultParkError as e:
        raise to_http_error(e)


@router.get("/reports/dashboard")
async def get_dashboard(
    date_filter: DateFilter = DateFilter.TODAY,
    lot_id: Optional[str] = None,
    services: Services = Depends(get_services)
):
    return await services.analytics.get_dashboard(date_filter, lot_id=lot_id)
