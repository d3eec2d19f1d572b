import math
from collections import defaultdict
from datetime import date, datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from vaultpark.domain.common import InvoiceStatus, MembershipType
from vaultpark.domain.entities import Invoice, ParkingSession, PricingTier
from vaultpark.shared.utils import ensure_aware, local_zone

BILLING_INCREMENT_MINUTES = 15
DUE_DAY_OF_MONTH = 5
OVERDUE_GRACE_DAYS = 5
OVERDUE_DAILY_RATE = 0.02
OVERDUE_MAX_RATE = 0.20

DEFAULT_TIERS: Dict[str, PricingTier] = {
    MembershipType.GOLD.value: PricingTier(
        membership_type=MembershipType.GOLD.value, hourly_rate=5.0, daily_cap=40.0
    ),
    MembershipType.PLATINUM.value: PricingTier(
        membership_type=MembershipType.PLATINUM.value,
        hourly_rate=4.0,
        daily_cap=30.0,
        monthly_unlimited_threshold=200.0,
    ),
}


def session_hours(entry_time: datetime, exit_time: Optional[datetime]) -> float:
    """Billable hours: whole minutes rounded up to the next 15-minute increment."""
    if exit_time is None:
        return 0.0
    seconds = (ensure_aware(exit_time) - ensure_aware(entry_time)).total_seconds()
    if seconds <= 0:
        return 0.0

    minutes = int(seconds // 60)
    rounded_minutes = math.ceil(minutes / BILLING_INCREMENT_MINUTES) * BILLING_INCREMENT_MINUTES
    return rounded_minutes / 60


def session_cost(entry_time: datetime, exit_time: Optional[datetime], tier: PricingTier) -> float:
    # No cap here; daily and monthly caps apply when a whole month is billed.
    return session_hours(entry_time, exit_time) * tier.hourly_rate


def total_hours(sessions: Iterable[ParkingSession]) -> float:
    return sum(session_hours(s.entry_time, s.exit_time) for s in sessions)


def group_by_day(sessions: Iterable[ParkingSession], zone: Optional[tzinfo] = None) -> Dict[date, List[ParkingSession]]:
    zone = zone or local_zone()
    days: Dict[date, List[ParkingSession]] = defaultdict(list)
    for session in sessions:
        days[ensure_aware(session.entry_time).astimezone(zone).date()].append(session)
    return dict(days)


def monthly_bill(sessions: Iterable[ParkingSession], tier: PricingTier, zone: Optional[tzinfo] = None) -> float:
    """Bill a month from scratch.

    Each calendar day (by entry time) is clamped to ``tier.daily_cap`` before
    it is added to the month, and the month is then clamped to
    ``tier.monthly_unlimited_threshold`` when the tier has one.
    """
    month_total = 0.0
    for day_sessions in group_by_day(sessions, zone).values():
        day_total = sum(session_cost(s.entry_time, s.exit_time, tier) for s in day_sessions)
        month_total += min(day_total, tier.daily_cap)

    if tier.monthly_unlimited_threshold is not None:
        month_total = min(month_total, tier.monthly_unlimited_threshold)

    return round(month_total, 2)


def invoice_due_date(month: int, year: int) -> date:
    """The 5th of the month after (month, year)."""
    if month == 12:
        return date(year + 1, 1, DUE_DAY_OF_MONTH)
    return date(year, month + 1, DUE_DAY_OF_MONTH)


def billing_period(moment: datetime, zone: Optional[tzinfo] = None) -> tuple[int, int]:
    local = ensure_aware(moment).astimezone(zone or local_zone())
    return local.month, local.year


def overdue_charges(invoice: Invoice, today: date) -> float:
    """Late fee: 2% of the total per day after a 5-day grace period, at most 20%."""
    if invoice.due_date is None or invoice.status == InvoiceStatus.PAID:
        return 0.0
    if today <= invoice.due_date:
        return 0.0

    days_late = (today - invoice.due_date).days
    if days_late <= OVERDUE_GRACE_DAYS:
        return 0.0

    rate = min((days_late - OVERDUE_GRACE_DAYS) * OVERDUE_DAILY_RATE, OVERDUE_MAX_RATE)
    return invoice.total_amount * rate


def check_overdue_status(invoice: Invoice, today: date) -> Optional[Invoice]:
    """Return an updated copy when the overdue fields changed, otherwise None."""
    if invoice.status == InvoiceStatus.PAID or invoice.due_date is None:
        return None
    if today <= invoice.due_date:
        return None

    days_late = (today - invoice.due_date).days
    updated = invoice.copy(is_overdue=True, days_overdue=days_late)
    # Truncated, not rounded, to whole cents
    updated.overdue_amount = int(overdue_charges(updated, today) * 100) / 100.0

    if (
        updated.is_overdue == invoice.is_overdue
        and updated.days_overdue == invoice.days_overdue
        and updated.overdue_amount == invoice.overdue_amount
    ):
        return None
    return updated
