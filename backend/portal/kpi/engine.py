"""Aggregation engine — the single entry point for KPI side effects.

The engine is a plain object with its store and resolvers injected, so the
same code runs against PostgreSQL in production and in-memory stores in
tests::

    engine = build_engine()
    update = await engine.apply_ledger_entry(entry)
    entry.attributed_user_id = update.user_id

Each event call is one atomic KPI-store update; events for different
(org, user, month) keys never share state.
"""

import logging
import uuid
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.config import settings
from portal.kpi import metrics
from portal.kpi.assignments import InMemoryAssignmentResolver, SqlAssignmentResolver
from portal.kpi.bookings import BookingEventHandler
from portal.kpi.ledger import LedgerEventHandler
from portal.kpi.periods import history_window
from portal.kpi.plans import InMemoryPlanResolver, SqlPlanResolver
from portal.kpi.store import InMemoryKPIStore, KPIKey, KPIStore, KPIUpdate, SqlKPIStore
from portal.models.booking import Booking, BookingStatus
from portal.models.kpi import KPI
from portal.models.ledger_entry import LedgerEntry

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Keeps monthly KPI rows in step with ledger and booking events."""

    def __init__(
        self,
        store: KPIStore,
        plans: SqlPlanResolver | InMemoryPlanResolver,
        assignments: SqlAssignmentResolver | InMemoryAssignmentResolver,
        *,
        history_max_months: int | None = None,
    ) -> None:
        self.store = store
        self.plans = plans
        self.assignments = assignments
        self.history_max_months = (
            settings.kpi_history_max_months if history_max_months is None else history_max_months
        )
        self.ledger = LedgerEventHandler(store, plans, assignments)
        self.bookings = BookingEventHandler(store, plans, assignments)

    # -- events -------------------------------------------------------------

    async def apply_ledger_entry(self, entry: LedgerEntry) -> KPIUpdate:
        return await self.ledger.apply(entry)

    async def reverse_ledger_entry(self, entry: LedgerEntry) -> KPIUpdate | None:
        return await self.ledger.reverse(entry)

    async def on_status_transition(
        self,
        booking: Booking,
        old_status: BookingStatus | str,
        new_status: BookingStatus | str,
    ) -> KPIUpdate | None:
        return await self.bookings.on_status_transition(booking, old_status, new_status)

    async def on_booking_deleted(self, booking: Booking) -> KPIUpdate | None:
        return await self.bookings.on_deleted(booking)

    async def restore_booking(self, booking: Booking, user_id: uuid.UUID) -> KPIUpdate | None:
        return await self.bookings.restore(booking, user_id)

    # -- plan changes -------------------------------------------------------

    async def reprice(self, org_id: uuid.UUID, user_id: uuid.UUID) -> list[KPI]:
        """Recompute net revenue of every KPI row of a manager after a plan change.

        Each row uses the fee percent in effect for its own month; gross,
        expenses and nights are left as they are.
        """
        repriced: list[KPI] = []
        for row in await self.store.list_for_user(org_id, user_id):
            fee_percent = await self.plans.resolve_fee_percent(org_id, user_id, row.month)

            def mutate(current: KPI) -> None:
                metrics.recompute_net_revenue(current, fee_percent)

            kpi = await self.store.update(KPIKey(org_id, user_id, row.month), mutate, create=False)
            if kpi is not None:
                repriced.append(kpi)
        logger.info("Repriced %d KPI rows for user %s in org %s", len(repriced), user_id, org_id)
        return repriced

    # -- reads --------------------------------------------------------------

    def clamp_months(self, months: int) -> int:
        return min(max(months, 1), self.history_max_months)

    async def get_month(self, org_id: uuid.UUID, user_id: uuid.UUID, month: date) -> KPI | None:
        return await self.store.get(KPIKey.for_date(org_id, user_id, month))

    async def history(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        months: int = 12,
        today: date | None = None,
    ) -> list[KPI]:
        """KPI rows for the last ``months`` calendar months, oldest first.

        ``months`` is clamped to 1..``history_max_months``. Months without
        activity have no row and are not filled in.
        """
        since, until = history_window(today or date.today(), self.clamp_months(months))
        return await self.store.list_for_user(org_id, user_id, since=since, until=until)


def build_engine(session_factory: async_sessionmaker[AsyncSession] | None = None) -> AggregationEngine:
    """Engine wired to the database behind ``session_factory``."""
    if session_factory is None:
        from portal.database import async_session_factory

        session_factory = async_session_factory
    return AggregationEngine(
        SqlKPIStore(session_factory),
        SqlPlanResolver(session_factory),
        SqlAssignmentResolver(session_factory),
    )


def build_memory_engine(default_fee_percent: int | None = None) -> AggregationEngine:
    """Engine on in-memory store and resolvers; fill them via ``engine.plans`` / ``engine.assignments``."""
    return AggregationEngine(
        InMemoryKPIStore(),
        InMemoryPlanResolver(default_fee_percent),
        InMemoryAssignmentResolver(),
    )
