"""In-place arithmetic on KPI rows.

All functions mutate a KPI row (persistent or transient) and keep the
derived columns consistent:

- ``net_revenue = gross - expenses - floor(gross * fee_percent / 100)``
- ``occupancy_rate = nights_booked / days_in_month(month)``
- ``vacancy_rate = 1 - occupancy_rate``

Reversals clamp at zero instead of going negative.
"""

from portal.kpi.periods import days_in_month
from portal.models.kpi import KPI


def platform_fee_cents(gross_revenue_cents: int, fee_percent: int) -> int:
    # gross is never negative, so floor division is the floor
    return gross_revenue_cents * fee_percent // 100


def recompute_net_revenue(row: KPI, fee_percent: int) -> None:
    row.fee_percent = fee_percent
    row.net_revenue_cents = (
        row.gross_revenue_cents - row.expenses_cents - platform_fee_cents(row.gross_revenue_cents, fee_percent)
    )


def recompute_occupancy(row: KPI) -> None:
    rate = row.nights_booked / days_in_month(row.month)
    row.occupancy_rate = rate
    row.vacancy_rate = 1 - rate


def add_amount(row: KPI, amount_cents: int) -> None:
    """Credit revenue (positive) or debit expenses (negative)."""
    if amount_cents > 0:
        row.gross_revenue_cents += amount_cents
    else:
        row.expenses_cents += -amount_cents


def remove_amount(row: KPI, amount_cents: int) -> None:
    """Undo :func:`add_amount`, clamping the affected total at zero."""
    if amount_cents > 0:
        row.gross_revenue_cents = max(0, row.gross_revenue_cents - amount_cents)
    else:
        row.expenses_cents = max(0, row.expenses_cents + amount_cents)


def add_nights(row: KPI, nights: int) -> None:
    row.nights_booked += nights
    recompute_occupancy(row)


def remove_nights(row: KPI, nights: int) -> None:
    row.nights_booked = max(0, row.nights_booked - nights)
    recompute_occupancy(row)
