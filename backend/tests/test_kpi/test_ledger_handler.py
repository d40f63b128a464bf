"""Tests for applying and reversing ledger entries."""

import uuid
from datetime import date

import pytest

from portal.kpi.engine import AggregationEngine
from portal.kpi.errors import InvalidAmountError, InvalidDateError, UnassignedPropertyError
from portal.kpi.ledger import validate_amount
from portal.kpi.store import KPIKey
from portal.models.ledger_entry import LedgerEntry

ORG_ID = uuid.uuid4()
MANAGER_ID = uuid.uuid4()
PROPERTY_ID = uuid.uuid4()
MARCH = date(2024, 3, 1)


def _entry(amount_cents, entry_date=date(2024, 3, 10), property_id=PROPERTY_ID) -> LedgerEntry:
    return LedgerEntry(
        id=uuid.uuid4(),
        org_id=ORG_ID,
        property_id=property_id,
        amount_cents=amount_cents,
        entry_date=entry_date,
        description="",
    )


@pytest.fixture
def engine(memory_engine: AggregationEngine) -> AggregationEngine:
    memory_engine.assignments.assign(PROPERTY_ID, MANAGER_ID, ORG_ID)
    memory_engine.plans.add(ORG_ID, MANAGER_ID, date(2024, 1, 1), 12)
    return memory_engine


async def _kpi(engine: AggregationEngine, month: date = MARCH):
    return await engine.store.get(KPIKey(ORG_ID, MANAGER_ID, month))


class TestValidateAmount:
    @pytest.mark.parametrize("amount", [1, -1, 10**12])
    def test_accepts_non_zero_integers(self, amount):
        assert validate_amount(amount) == amount

    @pytest.mark.parametrize("amount", [0, 1.5, "100", None, True])
    def test_rejects_everything_else(self, amount):
        with pytest.raises(InvalidAmountError):
            validate_amount(amount)


class TestApplyLedgerEntry:
    async def test_revenue_goes_to_gross(self, engine: AggregationEngine):
        update = await engine.apply_ledger_entry(_entry(50_000))

        assert update.user_id == MANAGER_ID
        assert update.key == KPIKey(ORG_ID, MANAGER_ID, MARCH)
        assert update.kpi.gross_revenue_cents == 50_000
        assert update.kpi.expenses_cents == 0
        assert update.kpi.net_revenue_cents == 44_000
        assert update.kpi.fee_percent == 12
        assert update.kpi.properties == 1

    async def test_expense_goes_to_expenses(self, engine: AggregationEngine):
        await engine.apply_ledger_entry(_entry(20_000))
        update = await engine.apply_ledger_entry(_entry(-3_000))

        assert update.kpi.gross_revenue_cents == 20_000
        assert update.kpi.expenses_cents == 3_000
        assert update.kpi.net_revenue_cents == 20_000 - 3_000 - 2_400

    async def test_entries_land_in_their_own_month(self, engine: AggregationEngine):
        await engine.apply_ledger_entry(_entry(100, entry_date=date(2024, 3, 31)))
        await engine.apply_ledger_entry(_entry(200, entry_date=date(2024, 4, 1)))

        assert (await _kpi(engine)).gross_revenue_cents == 100
        assert (await _kpi(engine, date(2024, 4, 1))).gross_revenue_cents == 200

    async def test_entry_date_may_be_iso_string(self, engine: AggregationEngine):
        update = await engine.apply_ledger_entry(_entry(100, entry_date="2024-03-10"))
        assert update.key.month == MARCH

    async def test_fee_uses_plan_of_entry_month(self, engine: AggregationEngine):
        engine.plans.add(ORG_ID, MANAGER_ID, date(2024, 4, 1), 22)

        march = await engine.apply_ledger_entry(_entry(10_000, entry_date=date(2024, 3, 5)))
        april = await engine.apply_ledger_entry(_entry(10_000, entry_date=date(2024, 4, 5)))

        assert march.kpi.net_revenue_cents == 8_800
        assert april.kpi.net_revenue_cents == 7_800

    async def test_unassigned_property_fails_without_kpi_row(self, engine: AggregationEngine):
        property_id = uuid.uuid4()
        with pytest.raises(UnassignedPropertyError) as exc_info:
            await engine.apply_ledger_entry(_entry(100, property_id=property_id))

        assert exc_info.value.property_id == property_id
        assert len(engine.store) == 0

    @pytest.mark.parametrize("amount", [0, 12.5, "500"])
    async def test_invalid_amount_touches_nothing(self, engine: AggregationEngine, amount):
        with pytest.raises(InvalidAmountError):
            await engine.apply_ledger_entry(_entry(amount))
        assert len(engine.store) == 0

    async def test_invalid_date_touches_nothing(self, engine: AggregationEngine):
        with pytest.raises(InvalidDateError):
            await engine.apply_ledger_entry(_entry(100, entry_date="2024-02-31"))
        assert len(engine.store) == 0


class TestReverseLedgerEntry:
    @pytest.mark.parametrize("amount", [50_000, -7_321, 1])
    async def test_apply_then_reverse_restores_row(self, engine: AggregationEngine, amount):
        await engine.apply_ledger_entry(_entry(33_333))
        await engine.apply_ledger_entry(_entry(-1_111))
        before = await _kpi(engine)

        entry = _entry(amount)
        update = await engine.apply_ledger_entry(entry)
        entry.attributed_user_id = update.user_id
        await engine.reverse_ledger_entry(entry)

        after = await _kpi(engine)
        assert after.gross_revenue_cents == before.gross_revenue_cents
        assert after.expenses_cents == before.expenses_cents
        assert after.net_revenue_cents == before.net_revenue_cents

    async def test_reverse_clamps_at_zero(self, engine: AggregationEngine):
        await engine.apply_ledger_entry(_entry(100))
        await engine.apply_ledger_entry(_entry(-100))

        await engine.reverse_ledger_entry(_entry(5_000))
        update = await engine.reverse_ledger_entry(_entry(-5_000))

        assert update.kpi.gross_revenue_cents == 0
        assert update.kpi.expenses_cents == 0
        assert update.kpi.net_revenue_cents == 0

    async def test_reverse_uses_recorded_manager(self, engine: AggregationEngine):
        entry = _entry(10_000)
        update = await engine.apply_ledger_entry(entry)
        entry.attributed_user_id = update.user_id

        new_manager = uuid.uuid4()
        engine.assignments.assign(PROPERTY_ID, new_manager, ORG_ID)
        reversed_update = await engine.reverse_ledger_entry(entry)

        assert reversed_update.user_id == MANAGER_ID
        assert (await _kpi(engine)).gross_revenue_cents == 0
        assert await engine.store.get(KPIKey(ORG_ID, new_manager, MARCH)) is None

    async def test_reverse_without_recorded_manager_resolves_current(self, engine: AggregationEngine):
        entry = _entry(10_000)
        await engine.apply_ledger_entry(entry)

        update = await engine.reverse_ledger_entry(entry)

        assert update.user_id == MANAGER_ID
        assert update.kpi.gross_revenue_cents == 0

    async def test_reverse_on_unassigned_property_is_noop(self, engine: AggregationEngine):
        assert await engine.reverse_ledger_entry(_entry(100, property_id=uuid.uuid4())) is None
        assert len(engine.store) == 0

    async def test_reverse_never_creates_a_row(self, engine: AggregationEngine):
        assert await engine.reverse_ledger_entry(_entry(100)) is None
        assert len(engine.store) == 0
