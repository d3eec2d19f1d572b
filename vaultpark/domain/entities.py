from datetime import date, datetime
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from vaultpark.domain.common import LotStatus, SessionStatus, InvoiceStatus


class AccessToken(BaseModel):
    """A decoded entry/exit credential. Only ever produced by the codec."""

    model_config = ConfigDict(frozen=True)

    issuer_tag: str
    subject_id: str
    issued_at_millis: int
    vehicle_plate: str
    integrity_digest: str


class ParkingLot:
    def __init__(
        self,
        owner_id: str,
        name: str,
        location: str,
        total_spaces: int,
        hourly_rate: float,
        available_spaces: Optional[int] = None,
        daily_cap: Optional[float] = None,
        status: LotStatus = LotStatus.ACTIVE,
        owner_name: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
        id: Optional[str] = None,
        version: int = 0,
    ):
        self.id = id
        self.owner_id = owner_id
        self.owner_name = owner_name
        self.name = name
        self.location = location
        self.latitude = latitude
        self.longitude = longitude
        self.total_spaces = total_spaces
        self.available_spaces = total_spaces if available_spaces is None else available_spaces
        self.hourly_rate = hourly_rate
        self.daily_cap = daily_cap
        self.status = status
        self.version = version

    @property
    def occupied_spaces(self) -> int:
        return self.total_spaces - self.available_spaces

    @property
    def is_full(self) -> bool:
        return self.available_spaces <= 0


class ParkingSession:
    def __init__(
        self,
        driver_id: str,
        vehicle_number: str,
        lot_id: str,
        entry_time: datetime,
        driver_name: str = "",
        gate_location: str = "",
        id: Optional[str] = None,
        exit_time: Optional[datetime] = None,
        status: SessionStatus = SessionStatus.ACTIVE,
        notes: str = "",
    ):
        self.id = id
        self.driver_id = driver_id
        self.driver_name = driver_name
        self.vehicle_number = vehicle_number
        self.lot_id = lot_id
        self.gate_location = gate_location
        self.entry_time = entry_time
        self.exit_time = exit_time
        self.status = status
        self.notes = notes

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class PricingTier:
    def __init__(
        self,
        membership_type: str,
        hourly_rate: float,
        daily_cap: float,
        monthly_unlimited_threshold: Optional[float] = None,
    ):
        self.membership_type = membership_type
        self.hourly_rate = hourly_rate
        self.daily_cap = daily_cap
        self.monthly_unlimited_threshold = monthly_unlimited_threshold


class Invoice:
    def __init__(
        self,
        driver_id: str,
        month: int,
        year: int,
        due_date: date,
        driver_name: str = "",
        total_sessions: int = 0,
        total_hours: float = 0.0,
        total_amount: float = 0.0,
        session_ids: Optional[Iterable[str]] = None,
        status: InvoiceStatus = InvoiceStatus.PENDING,
        is_overdue: bool = False,
        days_overdue: int = 0,
        overdue_amount: float = 0.0,
        paid_at: Optional[datetime] = None,
        id: Optional[str] = None,
        version: int = 0,
    ):
        self.id = id
        self.driver_id = driver_id
        self.driver_name = driver_name
        self.month = month
        self.year = year
        self.total_sessions = total_sessions
        self.total_hours = total_hours
        self.total_amount = total_amount
        self.session_ids = set(session_ids or ())
        self.status = status
        self.due_date = due_date
        self.is_overdue = is_overdue
        self.days_overdue = days_overdue
        self.overdue_amount = overdue_amount
        self.paid_at = paid_at
        self.version = version

    def copy(self, **changes) -> "Invoice":
        fields = dict(vars(self))
        fields["session_ids"] = set(self.session_ids)
        fields.update(changes)
        return Invoice(**fields)
