"""Seed the database with a demo organization and replay its activity.

Creates two managers, four properties (one left unassigned), plan history,
and then feeds ledger entries and booking transitions through the KPI
engine exactly like the API does, so the ``kpis`` table ends up populated.

Run from the backend directory:
    python -m scripts.seed_data
"""

import asyncio
import sys
import uuid
from datetime import date, timedelta
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.database import async_session_factory, engine
from portal.kpi.engine import build_engine
from portal.kpi.periods import add_months, month_start
from portal.kpi.plans import set_plan
from portal.models import KPI, Booking, BookingStatus, LedgerEntry, Plan, Property, PropertyAssignment, User

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_ORG_ID = uuid.uuid5(uuid.NAMESPACE_DNS, "demo.hostportal.example")

MANAGERS = [
    {"email": "ayu@hostportal.example", "name": "Ayu Lestari"},
    {"email": "made@hostportal.example", "name": "Made Wirawan"},
]

# property name -> manager email (None = unassigned)
PROPERTIES = {
    "Canggu Garden Villa": "ayu@hostportal.example",
    "Pererenan Pool House": "ayu@hostportal.example",
    "Ubud Ricefield Cottage": "made@hostportal.example",
    "Sidemen Hillside Hut": None,
}


def _build_events(props: dict[str, Property], today: date) -> tuple[list[dict], list[dict]]:
    """Return ledger entries and bookings spread over the last three months."""
    this_month = month_start(today)
    last_month = add_months(this_month, -1)
    two_ago = add_months(this_month, -2)

    ledger = [
        {"property": "Canggu Garden Villa", "amount_cents": 450_000, "entry_date": two_ago + timedelta(days=4), "category": "rent"},
        {"property": "Canggu Garden Villa", "amount_cents": -35_000, "entry_date": two_ago + timedelta(days=9), "category": "cleaning"},
        {"property": "Pererenan Pool House", "amount_cents": 620_000, "entry_date": last_month + timedelta(days=2), "category": "rent"},
        {"property": "Pererenan Pool House", "amount_cents": -80_000, "entry_date": last_month + timedelta(days=14), "category": "pool service"},
        {"property": "Canggu Garden Villa", "amount_cents": 300_000, "entry_date": this_month, "category": "rent"},
        {"property": "Ubud Ricefield Cottage", "amount_cents": 210_000, "entry_date": last_month + timedelta(days=6), "category": "rent"},
        {"property": "Ubud Ricefield Cottage", "amount_cents": -12_500, "entry_date": this_month, "category": "utilities"},
    ]

    bookings = [
        {"property": "Canggu Garden Villa", "check_in": two_ago + timedelta(days=3), "nights": 6, "status": "completed"},
        {"property": "Pererenan Pool House", "check_in": last_month + timedelta(days=1), "nights": 9, "status": "completed"},
        {"property": "Pererenan Pool House", "check_in": last_month + timedelta(days=20), "nights": 4, "status": "cancelled"},
        {"property": "Ubud Ricefield Cottage", "check_in": last_month + timedelta(days=5), "nights": 12, "status": "completed"},
        {"property": "Canggu Garden Villa", "check_in": this_month, "nights": 3, "status": "upcoming"},
        # Unassigned property: completes without touching KPIs
        {"property": "Sidemen Hillside Hut", "check_in": last_month + timedelta(days=10), "nights": 2, "status": "completed"},
    ]
    for row in ledger + bookings:
        row["property"] = props[row["property"]]
    return ledger, bookings


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def _clear_demo_org(session: AsyncSession) -> None:
    """Delete everything previously seeded for the demo org."""
    emails = [m["email"] for m in MANAGERS]
    await session.execute(delete(KPI).where(KPI.org_id == DEMO_ORG_ID))
    await session.execute(delete(LedgerEntry).where(LedgerEntry.org_id == DEMO_ORG_ID))
    await session.execute(delete(Booking).where(Booking.org_id == DEMO_ORG_ID))
    await session.execute(delete(Plan).where(Plan.org_id == DEMO_ORG_ID))
    await session.execute(delete(PropertyAssignment).where(PropertyAssignment.org_id == DEMO_ORG_ID))
    await session.execute(delete(Property).where(Property.org_id == DEMO_ORG_ID))
    await session.execute(delete(User).where(User.email.in_(emails)))
    await session.flush()


async def seed() -> None:
    """Populate the demo org and replay its events through the KPI engine.

    Idempotent: everything of the demo org is deleted and re-created.
    """
    today = date.today()

    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.email == MANAGERS[0]["email"]))
        if existing.scalar_one_or_none() is not None:
            print("⚠️  Demo org already seeded. Deleting and re-seeding...")
        await _clear_demo_org(session)

        # ------------------------------------------------------------------
        # 1. Managers and properties
        # ------------------------------------------------------------------
        users: dict[str, User] = {}
        for manager in MANAGERS:
            user = User(role="manager", **manager)
            session.add(user)
            users[user.email] = user
        await session.flush()

        props: dict[str, Property] = {}
        for name, manager_email in PROPERTIES.items():
            prop = Property(org_id=DEMO_ORG_ID, name=name)
            session.add(prop)
            await session.flush()
            props[name] = prop
            if manager_email is not None:
                session.add(
                    PropertyAssignment(org_id=DEMO_ORG_ID, property_id=prop.id, user_id=users[manager_email].id)
                )
            print(f"   🏠 {name} — {manager_email or 'unassigned'}")

        # ------------------------------------------------------------------
        # 2. Plans: Ayu upgrades from launch to elevate this month
        # ------------------------------------------------------------------
        ayu = users["ayu@hostportal.example"]
        made = users["made@hostportal.example"]
        await set_plan(session, DEMO_ORG_ID, ayu.id, "launch", add_months(month_start(today), -6))
        await set_plan(session, DEMO_ORG_ID, ayu.id, "elevate", month_start(today))
        await set_plan(session, DEMO_ORG_ID, made.id, "maximize", add_months(month_start(today), -6))

        await session.commit()
        print(f"✅ Created {len(users)} managers and {len(props)} properties in org {DEMO_ORG_ID}")

    # ----------------------------------------------------------------------
    # 3. Replay events through the engine, then store them
    # ----------------------------------------------------------------------
    kpi_engine = build_engine(async_session_factory)
    ledger_data, bookings_data = _build_events(props, today)

    async with async_session_factory() as session:
        for data in ledger_data:
            entry = LedgerEntry(
                id=uuid.uuid4(),
                org_id=DEMO_ORG_ID,
                property_id=data["property"].id,
                amount_cents=data["amount_cents"],
                entry_date=data["entry_date"],
                category=data["category"],
                description=f"Seeded {data['category']}",
            )
            update = await kpi_engine.apply_ledger_entry(entry)
            entry.attributed_user_id = update.user_id
            session.add(entry)
            await session.commit()

        for data in bookings_data:
            booking = Booking(
                id=uuid.uuid4(),
                org_id=DEMO_ORG_ID,
                property_id=data["property"].id,
                check_in=data["check_in"],
                check_out=data["check_in"] + timedelta(days=data["nights"]),
                status=data["status"],
            )
            if booking.status == BookingStatus.COMPLETED.value:
                update = await kpi_engine.on_status_transition(booking, BookingStatus.UPCOMING, BookingStatus.COMPLETED)
                booking.attributed_user_id = update.user_id if update else None
            session.add(booking)
            await session.commit()

    print(f"✅ Replayed {len(ledger_data)} ledger entries and {len(bookings_data)} bookings")

    # ----------------------------------------------------------------------
    # 4. Summary
    # ----------------------------------------------------------------------
    print()
    print("=" * 60)
    print("📊 KPI Summary")
    print("=" * 60)
    for user in users.values():
        for kpi in await kpi_engine.history(DEMO_ORG_ID, user.id, months=3, today=today):
            print(
                f"   {user.name:<14} {kpi.month:%Y-%m}  gross={kpi.gross_revenue_cents:>8}  "
                f"expenses={kpi.expenses_cents:>7}  net={kpi.net_revenue_cents:>8}  "
                f"fee={kpi.fee_percent}%  nights={kpi.nights_booked}  occupancy={kpi.occupancy_rate:.2f}"
            )
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
