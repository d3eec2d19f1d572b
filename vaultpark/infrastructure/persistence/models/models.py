import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Boolean, Date, JSON, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship
from vaultpark.shared.custom_types import UTCDateTime

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class ParkingLot(Base):
    __tablename__ = "parking_lots"

    id = Column(String, primary_key=True, default=new_id)
    owner_id = Column(String, unique=True, index=True, nullable=False)
    owner_name = Column(String, default="")
    name = Column(String, nullable=False)
    location = Column(String, default="")
    latitude = Column(Float, default=0.0)
    longitude = Column(Float, default=0.0)
    total_spaces = Column(Integer, nullable=False)
    available_spaces = Column(Integer, nullable=False)
    hourly_rate = Column(Float, nullable=False)
    daily_cap = Column(Float, nullable=True)
    status = Column(String, default="ACTIVE", index=True)  # ACTIVE, INACTIVE
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    parking_sessions = relationship("ParkingSession", back_populates="parking_lot")


class ParkingSession(Base):
    __tablename__ = "parking_sessions"
    # At most one ACTIVE session per driver
    __table_args__ = (
        Index(
            "uq_parking_sessions_active_driver",
            "driver_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(String, primary_key=True, default=new_id)
    driver_id = Column(String, index=True, nullable=False)
    driver_name = Column(String, default="")
    vehicle_number = Column(String, nullable=False)
    lot_id = Column(String, ForeignKey("parking_lots.id"), index=True)
    gate_location = Column(String, default="")
    entry_time = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    exit_time = Column(UTCDateTime, nullable=True)
    status = Column(String, default="ACTIVE", index=True)  # ACTIVE, COMPLETED
    notes = Column(String, default="")

    parking_lot = relationship("ParkingLot", back_populates="parking_sessions")


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("driver_id", "month", "year", name="uq_invoice_driver_period"),)

    id = Column(String, primary_key=True, default=new_id)
    driver_id = Column(String, index=True, nullable=False)
    driver_name = Column(String, default="")
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_sessions = Column(Integer, default=0)
    total_hours = Column(Float, default=0.0)
    total_amount = Column(Float, default=0.0)
    session_ids = Column(JSON, default=list)
    status = Column(String, default="PENDING")  # PENDING, PAID
    due_date = Column(Date, nullable=False)
    is_overdue = Column(Boolean, default=False)
    days_overdue = Column(Integer, default=0)
    overdue_amount = Column(Float, default=0.0)
    paid_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=0)
    generated_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))


class PricingTier(Base):
    __tablename__ = "pricing_tiers"

    membership_type = Column(String, primary_key=True)
    hourly_rate = Column(Float, nullable=False)
    daily_cap = Column(Float, nullable=False)
    monthly_unlimited_threshold = Column(Float, nullable=True)
