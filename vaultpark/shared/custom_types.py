import datetime
from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.dialects.sqlite import DATETIME as SQLITE_DATETIME


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, stored naive on SQLite.

    Naive values handed to the column are taken to already be UTC, the same
    convention the domain layer uses for anything read back from storage.
    """
    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(SQLITE_DATETIME())
        return dialect.type_descriptor(DateTime(timezone=True))

    def process_bind_param(self, value: datetime.datetime | None, dialect) -> datetime.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        utc_value = value.astimezone(datetime.timezone.utc)
        if dialect.name == 'sqlite':
            return utc_value.replace(tzinfo=None)
        return utc_value

    def process_result_value(self, value: datetime.datetime | None, dialect) -> datetime.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)
