"""Booking event handler — nights booked and occupancy.

Only entering or leaving ``completed`` touches KPIs::

    upcoming  -> completed   +nights
    cancelled -> completed   +nights
    completed -> upcoming    -nights
    completed -> cancelled   -nights
    completed -> (deleted)   -nights

Bookings on unassigned properties are skipped without error. Nights are only
removed from the manager recorded on the booking when it was credited.
"""

import logging
import uuid

from portal.kpi import metrics
from portal.kpi.assignments import InMemoryAssignmentResolver, SqlAssignmentResolver
from portal.kpi.errors import InvalidStatusError
from portal.kpi.periods import nights_between, parse_date
from portal.kpi.plans import InMemoryPlanResolver, SqlPlanResolver
from portal.kpi.store import KPIKey, KPIStore, KPIUpdate
from portal.models.booking import Booking, BookingStatus
from portal.models.kpi import KPI

logger = logging.getLogger(__name__)


def parse_status(value: BookingStatus | str) -> BookingStatus:
    try:
        return BookingStatus(value.lower() if isinstance(value, str) else value)
    except ValueError as exc:
        raise InvalidStatusError(value) from exc


class BookingEventHandler:
    """Adds and removes completed-booking nights on the manager's KPI row."""

    def __init__(
        self,
        store: KPIStore,
        plans: SqlPlanResolver | InMemoryPlanResolver,
        assignments: SqlAssignmentResolver | InMemoryAssignmentResolver,
    ) -> None:
        self.store = store
        self.plans = plans
        self.assignments = assignments

    async def on_status_transition(
        self,
        booking: Booking,
        old_status: BookingStatus | str,
        new_status: BookingStatus | str,
    ) -> KPIUpdate | None:
        """Apply the KPI effect of ``old_status -> new_status``.

        Returns the written KPI row, or None when the transition is a no-op
        (neither side completed, zero nights, no manager to credit, or no
        recorded manager to debit).
        """
        old = parse_status(old_status)
        new = parse_status(new_status)
        nights = nights_between(booking.check_in, booking.check_out)

        if old is not BookingStatus.COMPLETED and new is BookingStatus.COMPLETED:
            return await self._add(booking, nights)
        if old is BookingStatus.COMPLETED and new is not BookingStatus.COMPLETED:
            return await self._remove(booking, nights)
        return None

    async def on_deleted(self, booking: Booking) -> KPIUpdate | None:
        """Remove a completed booking's nights before the booking row is deleted."""
        status = parse_status(booking.status)
        nights = nights_between(booking.check_in, booking.check_out)
        if status is not BookingStatus.COMPLETED:
            return None
        return await self._remove(booking, nights)

    async def restore(self, booking: Booking, user_id: uuid.UUID) -> KPIUpdate | None:
        """Credit a booking's nights back to ``user_id`` after its removal could not be followed through."""
        nights = nights_between(booking.check_in, booking.check_out)
        if nights == 0:
            return None
        return await self._credit(booking, user_id, nights)

    async def _add(self, booking: Booking, nights: int) -> KPIUpdate | None:
        if nights == 0:
            return None
        user_id = await self.assignments.resolve_manager(booking.property_id)
        if user_id is None:
            logger.info("Booking %s on unassigned property %s completed, KPIs unchanged", booking.id, booking.property_id)
            return None
        return await self._credit(booking, user_id, nights)

    async def _credit(self, booking: Booking, user_id: uuid.UUID, nights: int) -> KPIUpdate:
        key = KPIKey.for_date(booking.org_id, user_id, parse_date(booking.check_in, "check_in"))
        fee_percent = await self.plans.resolve_fee_percent(key.org_id, key.user_id, key.month)
        properties = await self.assignments.count_properties(key.org_id, key.user_id)

        def mutate(row: KPI) -> None:
            metrics.add_nights(row, nights)
            metrics.recompute_net_revenue(row, fee_percent)
            row.properties = properties

        kpi = await self.store.update(key, mutate)
        logger.info("Booking %s completed: +%d nights on KPI %s (total %d)", booking.id, nights, key, kpi.nights_booked)
        return KPIUpdate(key, kpi)

    async def _remove(self, booking: Booking, nights: int) -> KPIUpdate | None:
        if nights == 0:
            return None
        # Only the manager credited at completion time is debited
        user_id = booking.attributed_user_id
        if user_id is None:
            logger.info("Booking %s left completed without a credited manager, KPIs unchanged", booking.id)
            return None

        key = KPIKey.for_date(booking.org_id, user_id, parse_date(booking.check_in, "check_in"))
        fee_percent = await self.plans.resolve_fee_percent(key.org_id, key.user_id, key.month)
        properties = await self.assignments.count_properties(key.org_id, key.user_id)

        def mutate(row: KPI) -> None:
            metrics.remove_nights(row, nights)
            metrics.recompute_net_revenue(row, fee_percent)
            row.properties = properties

        kpi = await self.store.update(key, mutate, create=False)
        if kpi is None:
            logger.warning("No KPI row %s to remove booking %s nights from", key, booking.id)
            return None
        logger.info("Booking %s left completed: -%d nights on KPI %s (total %d)", booking.id, nights, key, kpi.nights_booked)
        return KPIUpdate(key, kpi)
