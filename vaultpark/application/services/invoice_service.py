from datetime import date, datetime
from typing import List, Optional
from loguru import logger

from vaultpark.application.repositories import (
    AbstractInvoiceRepository,
    AbstractParkingSessionRepository,
    AbstractPricingTierRepository,
)
from vaultpark.config.settings_env import settings
from vaultpark.domain.billing import (
    DEFAULT_TIERS,
    billing_period,
    check_overdue_status,
    invoice_due_date,
    monthly_bill,
    session_hours,
    total_hours,
)
from vaultpark.domain.common import InvoiceStatus, MembershipType, SessionStatus
from vaultpark.domain.entities import Invoice, ParkingSession, PricingTier
from vaultpark.domain.errors import BillingError, InvoiceFoldConflict, InvoiceNotFound, StoreConflict
from vaultpark.shared.utils import local_zone, retry_transient, utc_now


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    zone = local_zone()
    start = datetime(year, month, 1, tzinfo=zone)
    end = datetime(year + 1, 1, 1, tzinfo=zone) if month == 12 else datetime(year, month + 1, 1, tzinfo=zone)
    return start, end


class InvoiceService:
    def __init__(
        self,
        invoice_repo: AbstractInvoiceRepository,
        parking_session_repo: AbstractParkingSessionRepository,
        pricing_tier_repo: AbstractPricingTierRepository,
    ):
        self.invoice_repo = invoice_repo
        self.parking_session_repo = parking_session_repo
        self.pricing_tier_repo = pricing_tier_repo

    async def resolve_tier(self, membership_type: Optional[str] = None) -> PricingTier:
        key = (membership_type or settings.DEFAULT_MEMBERSHIP).upper()
        if key not in MembershipType.__members__:
            logger.warning(f"Unknown membership {key}, billing as {settings.DEFAULT_MEMBERSHIP}")
            key = settings.DEFAULT_MEMBERSHIP.upper()

        tier = await self.pricing_tier_repo.get_by_membership(key)
        if tier is not None:
            return tier

        fallback = DEFAULT_TIERS.get(key, DEFAULT_TIERS[MembershipType.GOLD.value])
        logger.warning(f"No stored pricing tier for {key}, using built-in {fallback.membership_type}")
        return fallback

    async def fold_session(self, session: ParkingSession, tier: PricingTier) -> Invoice:
        """Add one completed session to its month's invoice.

        Folding the same session twice leaves the invoice unchanged. This is
        the fast path run at exit time; ``recompute_invoice`` produces the
        capped total that drivers are billed.
        """
        if session.status != SessionStatus.COMPLETED or session.exit_time is None:
            raise BillingError(f"Session {session.id} is not completed")

        month, year = billing_period(session.entry_time)

        async def attempt() -> Invoice:
            invoice = await self.invoice_repo.get_for_month(session.driver_id, month, year)
            if invoice is None:
                invoice = Invoice(
                    driver_id=session.driver_id,
                    driver_name=session.driver_name,
                    month=month,
                    year=year,
                    due_date=invoice_due_date(month, year),
                )

            if session.id in invoice.session_ids:
                logger.info(f"Session {session.id} already on invoice {invoice.id}, skipping")
                return invoice

            hours = session_hours(session.entry_time, session.exit_time)
            invoice.total_amount = round(invoice.total_amount + hours * tier.hourly_rate, 2)
            invoice.total_hours = invoice.total_hours + hours
            invoice.total_sessions += 1
            invoice.session_ids.add(session.id)
            return await self.invoice_repo.upsert(invoice)

        try:
            invoice = await retry_transient(attempt, description=f"invoice fold of session {session.id}")
        except StoreConflict as e:
            logger.error(f"Giving up folding session {session.id} into {month}/{year}: {e}")
            raise InvoiceFoldConflict(f"Could not fold session {session.id} after retries") from e

        logger.info(
            f"Invoice {invoice.id} for {session.driver_id} {month}/{year}: "
            f"{invoice.total_sessions} sessions, ${invoice.total_amount:.2f}"
        )
        return invoice

    async def recompute_invoice(
        self, driver_id: str, month: int, year: int, tier: PricingTier, driver_name: str = ""
    ) -> Invoice:
        """Rebuild a month's invoice from its completed sessions, with daily and monthly caps."""
        start, end = month_bounds(month, year)

        async def attempt() -> Invoice:
            sessions = await self.parking_session_repo.get_completed_for_driver_between(driver_id, start, end)
            invoice = await self.invoice_repo.get_for_month(driver_id, month, year)
            if invoice is None:
                invoice = Invoice(
                    driver_id=driver_id,
                    driver_name=driver_name or (sessions[0].driver_name if sessions else ""),
                    month=month,
                    year=year,
                    due_date=invoice_due_date(month, year),
                )
            elif invoice.status == InvoiceStatus.PAID:
                logger.info(f"Invoice {invoice.id} is paid, not recomputing")
                return invoice

            invoice.total_amount = monthly_bill(sessions, tier)
            invoice.total_hours = total_hours(sessions)
            invoice.total_sessions = len(sessions)
            invoice.session_ids = {s.id for s in sessions}
            return await self.invoice_repo.upsert(invoice)

        try:
            return await retry_transient(attempt, description=f"invoice recompute {driver_id} {month}/{year}")
        except StoreConflict as e:
            raise InvoiceFoldConflict(f"Could not recompute invoice {driver_id} {month}/{year}") from e

    async def _get(self, invoice_id: str) -> Invoice:
        invoice = await self.invoice_repo.get_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    async def refresh_overdue(self, invoice_id: str, today: Optional[date] = None) -> Invoice:
        today = today or utc_now().astimezone(local_zone()).date()

        async def attempt() -> Invoice:
            invoice = await self._get(invoice_id)
            updated = check_overdue_status(invoice, today)
            if updated is None:
                return invoice
            logger.info(f"Invoice {invoice_id} overdue by {updated.days_overdue} days, fee ${updated.overdue_amount:.2f}")
            return await self.invoice_repo.upsert(updated)

        return await retry_transient(attempt, description=f"overdue refresh of invoice {invoice_id}")

    async def mark_paid(self, invoice_id: str) -> Invoice:
        async def attempt() -> Invoice:
            invoice = await self._get(invoice_id)
            if invoice.status == InvoiceStatus.PAID:
                return invoice
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = utc_now()
            return await self.invoice_repo.upsert(invoice)

        invoice = await retry_transient(attempt, description=f"marking invoice {invoice_id} paid")
        logger.info(f"Invoice {invoice_id} marked paid")
        return invoice

    async def get_invoice(self, driver_id: str, month: int, year: int) -> Optional[Invoice]:
        return await self.invoice_repo.get_for_month(driver_id, month, year)

    async def invoice_history(self, driver_id: str, limit: int = 6) -> List[Invoice]:
        return await self.invoice_repo.get_history(driver_id, limit)
