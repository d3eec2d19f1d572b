import pytest
from datetime import datetime, timezone, timedelta
from sqlalchemy import create_engine, Column, Integer
from sqlalchemy.orm import sessionmaker, declarative_base
from vaultpark.shared.custom_types import UTCDateTime
from unittest.mock import MagicMock

Base = declarative_base()


class GateEvent(Base):
    __tablename__ = "gate_events"
    id = Column(Integer, primary_key=True)
    scanned_at = Column(UTCDateTime)


@pytest.fixture(scope="function")
def db_session_custom_types():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


def _postgres_dialect():
    dialect = MagicMock()
    dialect.name = 'postgresql'
    return dialect


def test_aware_datetime_round_trips_as_utc(db_session_custom_types):
    session = db_session_custom_types
    scanned = datetime(2024, 3, 14, 9, 26, 53, tzinfo=timezone.utc)

    session.add(GateEvent(scanned_at=scanned))
    session.commit()

    stored = session.query(GateEvent).first()
    assert stored.scanned_at == scanned
    assert stored.scanned_at.tzinfo == timezone.utc


def test_naive_datetime_is_read_as_utc(db_session_custom_types):
    session = db_session_custom_types
    naive = datetime(2024, 3, 14, 9, 26, 53)

    session.add(GateEvent(scanned_at=naive))
    session.commit()

    stored = session.query(GateEvent).first()
    assert stored.scanned_at == naive.replace(tzinfo=timezone.utc)


def test_none_value(db_session_custom_types):
    session = db_session_custom_types

    session.add(GateEvent(scanned_at=None))
    session.commit()

    assert session.query(GateEvent).first().scanned_at is None


def test_other_timezone_is_converted_to_utc(db_session_custom_types):
    session = db_session_custom_types
    est = timezone(timedelta(hours=-5))
    scanned = datetime(2024, 12, 31, 22, 30, tzinfo=est)

    session.add(GateEvent(scanned_at=scanned))
    session.commit()

    stored = session.query(GateEvent).first()
    assert stored.scanned_at == datetime(2025, 1, 1, 3, 30, tzinfo=timezone.utc)
    assert stored.scanned_at.tzinfo == timezone.utc


def test_bind_param_keeps_timezone_outside_sqlite():
    utc_type = UTCDateTime()
    est = timezone(timedelta(hours=-5))

    processed = utc_type.process_bind_param(datetime(2023, 1, 1, 5, 0, tzinfo=est), _postgres_dialect())

    assert processed.tzinfo == timezone.utc
    assert processed == datetime(2023, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_result_value_converts_aware_values_to_utc():
    utc_type = UTCDateTime()
    cet = timezone(timedelta(hours=1))

    processed = utc_type.process_result_value(datetime(2023, 1, 1, 11, 0, tzinfo=cet), _postgres_dialect())

    assert processed == datetime(2023, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert processed.tzinfo == timezone.utc


def test_load_dialect_impl_non_sqlite():
    utc_type = UTCDateTime()
    mock_dialect = _postgres_dialect()
    mock_dialect.type_descriptor.return_value = "mock_type_descriptor"

    result = utc_type.load_dialect_impl(mock_dialect)
    assert result == "mock_type_descriptor"
    args, _ = mock_dialect.type_descriptor.call_args
    assert isinstance(args[0], UTCDateTime.impl)
    assert args[0].timezone is True
