from datetime import datetime, timedelta
from typing import Dict, List, Optional

from vaultpark.application.repositories import AbstractParkingSessionRepository
from vaultpark.domain.entities import ParkingSession
from vaultpark.domain.reports import (
    DateFilter,
    DailyCount,
    HourlyCount,
    TopDriver,
    daily_trend,
    hourly_histogram,
    report_statistics,
    top_drivers,
)
from vaultpark.shared.utils import utc_now


class AnalyticsService:
    def __init__(self, parking_session_repo: AbstractParkingSessionRepository):
        self.parking_session_repo = parking_session_repo

    async def get_sessions(
        self, date_filter: DateFilter = DateFilter.ALL, now: Optional[datetime] = None, lot_id: Optional[str] = None
    ) -> List[ParkingSession]:
        start, end = date_filter.date_range(now or utc_now())
        return await self.parking_session_repo.get_sessions_between(start, end, lot_id)

    async def get_hourly_histogram(self, date_filter: DateFilter = DateFilter.TODAY, now: Optional[datetime] = None) -> List[HourlyCount]:
        return hourly_histogram(await self.get_sessions(date_filter, now))

    async def get_daily_trend(self, date_filter: DateFilter = DateFilter.THIS_MONTH, now: Optional[datetime] = None) -> List[DailyCount]:
        return daily_trend(await self.get_sessions(date_filter, now))

    async def get_top_drivers(self, date_filter: DateFilter = DateFilter.THIS_MONTH, now: Optional[datetime] = None) -> List[TopDriver]:
        return top_drivers(await self.get_sessions(date_filter, now))

    async def get_dashboard(
        self, date_filter: DateFilter = DateFilter.TODAY, now: Optional[datetime] = None, lot_id: Optional[str] = None
    ) -> Dict:
        now = now or utc_now()
        sessions = await self.get_sessions(date_filter, now, lot_id)
        start, end = date_filter.date_range(now)
        if start is None:
            start = min((s.entry_time for s in sessions), default=now)
            end = now
        else:
            # Shown as an inclusive range
            end = end - timedelta(microseconds=1)

        return {
            "filter": date_filter.value,
            "stats": report_statistics(sessions, start, end),
            "hourly": hourly_histogram(sessions),
            "daily_trend": daily_trend(sessions),
            "top_drivers": top_drivers(sessions),
        }
