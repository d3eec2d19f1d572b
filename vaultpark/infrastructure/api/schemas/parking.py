from pydantic import BaseModel, Field, field_validator, ConfigDict
from datetime import date, datetime, timezone
from typing import Optional, List
from vaultpark.domain.common import LotStatus, SessionStatus, InvoiceStatus, ScanType


def _normalize_plate(v: str) -> str:
    return v.upper().strip()


class TokenRequest(BaseModel):
    driver_id: str = Field(..., min_length=1, max_length=128)
    vehicle_number: str = Field(..., min_length=1, max_length=20)

    @field_validator('vehicle_number')
    def validate_vehicle_number(cls, v):  # pylint: disable=no-self-argument
        return _normalize_plate(v)


class TokenResponse(BaseModel):
    token: str
    expires_in_millis: int


class ScanRequest(BaseModel):
    token: str = Field(..., min_length=1)
    lot_id: str = Field(..., min_length=1)
    gate_location: str = ""
    driver_name: str = ""
    membership_type: Optional[str] = None


class ParkingLotCreate(BaseModel):
    owner_id: str = Field(..., min_length=1)
    owner_name: str = ""
    name: str = Field(..., min_length=1, max_length=100)
    location: str = ""
    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)
    total_spaces: int = Field(..., gt=0)
    hourly_rate: float = Field(..., ge=0)
    daily_cap: Optional[float] = Field(default=None, ge=0)


class ParkingLotUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    total_spaces: Optional[int] = Field(default=None, gt=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    daily_cap: Optional[float] = Field(default=None, ge=0)
    status: Optional[LotStatus] = None


class ParkingLotResponse(BaseModel):
    id: str
    owner_id: str
    owner_name: str
    name: str
    location: str
    latitude: float
    longitude: float
    total_spaces: int
    available_spaces: int
    occupied_spaces: int
    is_full: bool
    hourly_rate: float
    daily_cap: Optional[float] = None
    status: LotStatus

    model_config = ConfigDict(from_attributes=True)


class ParkingSessionResponse(BaseModel):
    id: str
    driver_id: str
    driver_name: str
    vehicle_number: str
    lot_id: str
    gate_location: str
    entry_time: datetime
    exit_time: Optional[datetime] = None
    status: SessionStatus
    notes: str = ""

    @field_validator('entry_time', 'exit_time')
    @classmethod
    def make_datetime_aware(cls, dt: datetime) -> datetime:
        if dt is None:
            return dt
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    model_config = ConfigDict(from_attributes=True)


class SessionNote(BaseModel):
    note: str = Field(..., min_length=1, max_length=500)


class CloseSessionRequest(BaseModel):
    membership_type: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: str
    driver_id: str
    driver_name: str
    month: int = Field(..., ge=1, le=12)
    year: int
    total_sessions: int
    total_hours: float
    total_amount: float
    session_ids: List[str]
    status: InvoiceStatus
    due_date: date
    is_overdue: bool
    days_overdue: int
    overdue_amount: float
    paid_at: Optional[datetime] = None

    @field_validator('session_ids', mode='before')
    @classmethod
    def sort_session_ids(cls, v):
        return sorted(v)

    model_config = ConfigDict(from_attributes=True)


class CloseSessionResponse(BaseModel):
    session: ParkingSessionResponse
    invoice: Optional[InvoiceResponse] = None


class ScanResponse(BaseModel):
    success: bool
    message: str
    scan_type: Optional[ScanType] = None
    error_kind: Optional[str] = None
    session: Optional[ParkingSessionResponse] = None
    invoice: Optional[InvoiceResponse] = None

    model_config = ConfigDict(from_attributes=True)


class RecomputeRequest(BaseModel):
    driver_id: str = Field(..., min_length=1)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000)
    membership_type: Optional[str] = None
