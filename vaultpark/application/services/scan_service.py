from datetime import datetime, timezone
from typing import Optional
from loguru import logger

from vaultpark.application.services.session_service import SessionService
from vaultpark.domain.access_token import TokenCodec
from vaultpark.domain.common import ScanType
from vaultpark.domain.entities import AccessToken, Invoice, ParkingSession
from vaultpark.domain.errors import VaultParkError, VehicleMismatch
from vaultpark.shared.utils import now_millis


class ScanResult:
    """Outcome of one gate scan, ready to be shown to the guard."""

    def __init__(
        self,
        success: bool,
        message: str,
        scan_type: Optional[ScanType] = None,
        session: Optional[ParkingSession] = None,
        invoice: Optional[Invoice] = None,
        error_kind: Optional[str] = None,
    ):
        self.success = success
        self.message = message
        self.scan_type = scan_type
        self.session = session
        self.invoice = invoice
        self.error_kind = error_kind

    @classmethod
    def failed(cls, error: VaultParkError) -> "ScanResult":
        return cls(success=False, message=error.user_message, error_kind=error.kind)


class ScanService:
    def __init__(self, session_service: SessionService, codec: Optional[TokenCodec] = None):
        self.session_service = session_service
        self.codec = codec or TokenCodec()

    def issue_token(self, driver_id: str, vehicle_number: str, at_millis: Optional[int] = None) -> str:
        return self.codec.encode(driver_id, vehicle_number, at_millis if at_millis is not None else now_millis())

    async def process_scan(
        self,
        token: str,
        lot_id: str,
        gate_location: str = "",
        driver_name: str = "",
        membership_type: Optional[str] = None,
        at_millis: Optional[int] = None,
    ) -> ScanResult:
        """Validate a scanned token and run the entry or exit it stands for.

        A driver without an active session is entering; a driver with one is
        leaving. Engine errors become failed results, never exceptions.
        """
        scanned_at = at_millis if at_millis is not None else now_millis()
        now = datetime.fromtimestamp(scanned_at / 1000, tz=timezone.utc)
        try:
            access_token = self.codec.validate(token, scanned_at)
        except VaultParkError as e:
            logger.warning(f"Rejected token at lot {lot_id}: {e.kind} ({e.detail})")
            return ScanResult.failed(e)

        try:
            active = await self.session_service.get_active_session(access_token.subject_id)
            if active is None:
                return await self._entry(access_token, lot_id, gate_location, driver_name, now)
            return await self._exit(access_token, active, membership_type, now)
        except VaultParkError as e:
            logger.warning(f"Scan for {access_token.subject_id} at lot {lot_id} failed: {e.kind} ({e.detail})")
            return ScanResult.failed(e)

    async def _entry(
        self, token: AccessToken, lot_id: str, gate_location: str, driver_name: str, now: datetime
    ) -> ScanResult:
        session = await self.session_service.open_session(
            driver_id=token.subject_id,
            driver_name=driver_name,
            vehicle_number=token.vehicle_plate,
            lot_id=lot_id,
            gate_location=gate_location,
            now=now,
        )
        return ScanResult(
            success=True,
            message=f"Entry recorded for {session.vehicle_number}",
            scan_type=ScanType.ENTRY,
            session=session,
        )

    async def _exit(
        self, token: AccessToken, active: ParkingSession, membership_type: Optional[str], now: datetime
    ) -> ScanResult:
        if active.vehicle_number != token.vehicle_plate:
            raise VehicleMismatch(f"Expected {active.vehicle_number}, scanned {token.vehicle_plate}")

        closure = await self.session_service.close_session(active.id, membership_type=membership_type, now=now)
        return ScanResult(
            success=True,
            message=f"Exit recorded for {closure.session.vehicle_number}",
            scan_type=ScanType.EXIT,
            session=closure.session,
            invoice=closure.invoice,
        )
