"""Read-only dashboard aggregations over an in-memory list of sessions.

All functions are pure: the same session list (and ``now``/zone) always gives
the same result.
"""
from collections import Counter
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from vaultpark.domain.common import SessionStatus
from vaultpark.domain.entities import ParkingSession
from vaultpark.shared.utils import ensure_aware, local_zone

TOP_DRIVER_LIMIT = 5


class HourlyCount(BaseModel):
    hour: int
    count: int


class DailyCount(BaseModel):
    date: datetime
    count: int


class TopDriver(BaseModel):
    driver_id: str
    driver_name: str
    vehicle_number: str
    visit_count: int
    total_hours: float


class ReportStats(BaseModel):
    total_scans: int
    total_entries: int
    total_exits: int
    active_now: int
    average_duration: float
    busiest_hour: int
    date_range: str


def _local(moment: datetime, zone: tzinfo) -> datetime:
    return ensure_aware(moment).astimezone(zone)


def start_of_day(moment: datetime, zone: Optional[tzinfo] = None) -> datetime:
    local = _local(moment, zone or local_zone())
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def duration_hours(session: ParkingSession) -> float:
    """Actual (unrounded) stay length; 0.0 while the session is open."""
    if session.exit_time is None:
        return 0.0
    return (ensure_aware(session.exit_time) - ensure_aware(session.entry_time)).total_seconds() / 3600


def hourly_histogram(sessions: Iterable[ParkingSession], zone: Optional[tzinfo] = None) -> List[HourlyCount]:
    """Scans per hour of day; an exit counts in its own hour, separately from its entry."""
    zone = zone or local_zone()
    counts = Counter()
    for session in sessions:
        counts[_local(session.entry_time, zone).hour] += 1
        if session.exit_time is not None:
            counts[_local(session.exit_time, zone).hour] += 1
    return [HourlyCount(hour=hour, count=counts[hour]) for hour in range(24)]


def daily_trend(sessions: Iterable[ParkingSession], zone: Optional[tzinfo] = None) -> List[DailyCount]:
    zone = zone or local_zone()
    counts = Counter(start_of_day(s.entry_time, zone) for s in sessions)
    return [DailyCount(date=day, count=counts[day]) for day in sorted(counts)]


def top_drivers(sessions: Iterable[ParkingSession], limit: int = TOP_DRIVER_LIMIT) -> List[TopDriver]:
    by_driver: Dict[str, List[ParkingSession]] = {}
    for session in sessions:
        if session.driver_id:
            by_driver.setdefault(session.driver_id, []).append(session)

    ranked = [
        TopDriver(
            driver_id=driver_id,
            driver_name=driver_sessions[0].driver_name or "Unknown",
            vehicle_number=driver_sessions[0].vehicle_number or "Unknown",
            visit_count=len(driver_sessions),
            total_hours=sum(duration_hours(s) for s in driver_sessions if s.exit_time is not None),
        )
        for driver_id, driver_sessions in by_driver.items()
    ]
    ranked.sort(key=lambda d: d.visit_count, reverse=True)
    return ranked[:limit]


def format_date_range(start: datetime, end: datetime, zone: Optional[tzinfo] = None) -> str:
    zone = zone or local_zone()
    first, last = _local(start, zone), _local(end, zone)
    return f"{first:%b} {first.day} - {last:%b} {last.day}"


def report_statistics(
    sessions: Sequence[ParkingSession],
    start: datetime,
    end: datetime,
    zone: Optional[tzinfo] = None,
) -> ReportStats:
    zone = zone or local_zone()
    entries = len(sessions)
    completed = [s for s in sessions if s.exit_time is not None]
    active = sum(1 for s in sessions if s.status == SessionStatus.ACTIVE)

    average = sum(duration_hours(s) for s in completed) / len(completed) if completed else 0.0

    entry_hours = Counter(_local(s.entry_time, zone).hour for s in sessions)
    busiest_hour = max(range(24), key=lambda hour: entry_hours[hour])

    return ReportStats(
        total_scans=entries + len(completed),
        total_entries=entries,
        total_exits=len(completed),
        active_now=active,
        average_duration=average,
        busiest_hour=busiest_hour,
        date_range=format_date_range(start, end, zone),
    )


class DateFilter(str, Enum):
    TODAY = "TODAY"
    THIS_WEEK = "THIS_WEEK"
    THIS_MONTH = "THIS_MONTH"
    ALL = "ALL"

    def date_range(self, now: datetime, zone: Optional[tzinfo] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Half-open [start, end) window containing ``now``; (None, None) for ALL."""
        today = start_of_day(now, zone)
        if self is DateFilter.TODAY:
            return today, today + timedelta(days=1)
        if self is DateFilter.THIS_WEEK:
            # Weeks start on Sunday
            start = today - timedelta(days=(today.weekday() + 1) % 7)
            return start, start + timedelta(days=7)
        if self is DateFilter.THIS_MONTH:
            start = today.replace(day=1)
            if start.month == 12:
                return start, start.replace(year=start.year + 1, month=1)
            return start, start.replace(month=start.month + 1)
        return None, None

    def matches(self, session: ParkingSession, now: datetime, zone: Optional[tzinfo] = None) -> bool:
        start, end = self.date_range(now, zone)
        if start is None:
            return True
        return start <= ensure_aware(session.entry_time) < end
