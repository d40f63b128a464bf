"""Ledger event handler — revenue and expense contributions to KPIs."""

import logging
from datetime import date

from portal.kpi import metrics
from portal.kpi.assignments import InMemoryAssignmentResolver, SqlAssignmentResolver
from portal.kpi.errors import InvalidAmountError, UnassignedPropertyError
from portal.kpi.periods import parse_date
from portal.kpi.plans import InMemoryPlanResolver, SqlPlanResolver
from portal.kpi.store import KPIKey, KPIStore, KPIUpdate
from portal.models.kpi import KPI
from portal.models.ledger_entry import LedgerEntry

logger = logging.getLogger(__name__)


def validate_amount(amount: object) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise InvalidAmountError(amount)
    return amount


class LedgerEventHandler:
    """Applies and reverses ledger entries against the owning manager's KPI row."""

    def __init__(
        self,
        store: KPIStore,
        plans: SqlPlanResolver | InMemoryPlanResolver,
        assignments: SqlAssignmentResolver | InMemoryAssignmentResolver,
    ) -> None:
        self.store = store
        self.plans = plans
        self.assignments = assignments

    async def _target(self, entry: LedgerEntry, entry_date: date, recorded: bool) -> KPIKey | None:
        user_id = entry.attributed_user_id if recorded else None
        if user_id is None:
            user_id = await self.assignments.resolve_manager(entry.property_id)
        if user_id is None:
            return None
        return KPIKey.for_date(entry.org_id, user_id, entry_date)

    async def apply(self, entry: LedgerEntry) -> KPIUpdate:
        """Add the entry's amount to gross revenue or expenses.

        Raises:
            InvalidAmountError, InvalidDateError: malformed entry.
            UnassignedPropertyError: the property has no manager.
            TransientStoreError: the KPI row stayed busy.
        """
        amount = validate_amount(entry.amount_cents)
        entry_date = parse_date(entry.entry_date, "entry_date")

        key = await self._target(entry, entry_date, recorded=False)
        if key is None:
            raise UnassignedPropertyError(entry.property_id)

        fee_percent = await self.plans.resolve_fee_percent(key.org_id, key.user_id, key.month)
        properties = await self.assignments.count_properties(key.org_id, key.user_id)

        def mutate(row: KPI) -> None:
            metrics.add_amount(row, amount)
            metrics.recompute_net_revenue(row, fee_percent)
            row.properties = properties

        kpi = await self.store.update(key, mutate)
        logger.info(
            "Applied ledger entry %s (%+d cents) to KPI %s: gross=%d expenses=%d net=%d",
            entry.id,
            amount,
            key,
            kpi.gross_revenue_cents,
            kpi.expenses_cents,
            kpi.net_revenue_cents,
        )
        return KPIUpdate(key, kpi)

    async def reverse(self, entry: LedgerEntry) -> KPIUpdate | None:
        """Subtract the entry's recorded contribution, clamping totals at zero.

        The manager recorded on the entry at apply time is used when present.
        Returns None when there is no manager to reverse against.
        """
        amount = validate_amount(entry.amount_cents)
        entry_date = parse_date(entry.entry_date, "entry_date")

        key = await self._target(entry, entry_date, recorded=True)
        if key is None:
            logger.warning(
                "Ledger entry %s on unassigned property %s has no KPI contribution to reverse",
                entry.id,
                entry.property_id,
            )
            return None

        fee_percent = await self.plans.resolve_fee_percent(key.org_id, key.user_id, key.month)
        properties = await self.assignments.count_properties(key.org_id, key.user_id)

        def mutate(row: KPI) -> None:
            metrics.remove_amount(row, amount)
            metrics.recompute_net_revenue(row, fee_percent)
            row.properties = properties

        kpi = await self.store.update(key, mutate, create=False)
        if kpi is None:
            logger.warning("No KPI row %s to reverse ledger entry %s against", key, entry.id)
            return None
        logger.info(
            "Reversed ledger entry %s (%+d cents) on KPI %s: gross=%d expenses=%d net=%d",
            entry.id,
            amount,
            key,
            kpi.gross_revenue_cents,
            kpi.expenses_cents,
            kpi.net_revenue_cents,
        )
        return KPIUpdate(key, kpi)
