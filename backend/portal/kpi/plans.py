"""Plan tiers and the time-effective fee percent lookup."""

import bisect
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.config import settings
from portal.kpi.errors import InvalidPlanTierError
from portal.models.plan import Plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanTier:
    """A commission tier offered to managers."""

    name: str
    display_name: str
    percent: int


PLAN_TIERS: dict[str, PlanTier] = {
    "launch": PlanTier(name="launch", display_name="Launch", percent=12),
    "elevate": PlanTier(name="elevate", display_name="Elevate", percent=18),
    "maximize": PlanTier(name="maximize", display_name="Maximize", percent=22),
}


def get_tier(name: str) -> PlanTier:
    """Get a tier by name (case-insensitive)."""
    tier = PLAN_TIERS.get(name.strip().lower()) if isinstance(name, str) else None
    if tier is None:
        raise InvalidPlanTierError(name)
    return tier


class PlanSchedule:
    """Plans of one (org, user) ordered by effective date.

    Lookup is the last plan whose effective date is on or before the target
    month. Plans sharing an effective date resolve to the one added last.
    """

    def __init__(self, plans: Iterable[tuple[date, int]] = ()) -> None:
        ordered = sorted(plans, key=lambda item: item[0])
        self._dates = [effective for effective, _ in ordered]
        self._percents = [percent for _, percent in ordered]

    def add(self, effective_date: date, percent: int) -> None:
        index = bisect.bisect_right(self._dates, effective_date)
        self._dates.insert(index, effective_date)
        self._percents.insert(index, percent)

    def percent_for(self, month: date) -> int | None:
        index = bisect.bisect_right(self._dates, month)
        if index == 0:
            return None
        return self._percents[index - 1]

    def __len__(self) -> int:
        return len(self._dates)


class InMemoryPlanResolver:
    """Plan lookup over schedules held in memory."""

    def __init__(self, default_percent: int | None = None) -> None:
        self.default_percent = settings.default_fee_percent if default_percent is None else default_percent
        self._schedules: dict[tuple[uuid.UUID, uuid.UUID], PlanSchedule] = {}

    def add(self, org_id: uuid.UUID, user_id: uuid.UUID, effective_date: date, percent: int) -> None:
        self._schedules.setdefault((org_id, user_id), PlanSchedule()).add(effective_date, percent)

    async def resolve_fee_percent(self, org_id: uuid.UUID, user_id: uuid.UUID, month: date) -> int:
        schedule = self._schedules.get((org_id, user_id))
        percent = schedule.percent_for(month) if schedule is not None else None
        return self.default_percent if percent is None else percent


class SqlPlanResolver:
    """Plan lookup backed by the ``plans`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        default_percent: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.default_percent = settings.default_fee_percent if default_percent is None else default_percent

    async def load_schedule(self, org_id: uuid.UUID, user_id: uuid.UUID, until: date | None = None) -> PlanSchedule:
        query = (
            select(Plan.effective_date, Plan.percent)
            .where(Plan.org_id == org_id, Plan.user_id == user_id)
            .order_by(Plan.effective_date)
        )
        if until is not None:
            query = query.where(Plan.effective_date <= until)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return PlanSchedule((row.effective_date, row.percent) for row in result)

    async def resolve_fee_percent(self, org_id: uuid.UUID, user_id: uuid.UUID, month: date) -> int:
        schedule = await self.load_schedule(org_id, user_id, until=month)
        percent = schedule.percent_for(month)
        if percent is None:
            logger.debug("No plan for user %s in %s, using default %d%%", user_id, month, self.default_percent)
            return self.default_percent
        return percent


async def set_plan(
    db: AsyncSession,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    tier_name: str,
    effective_date: date,
) -> Plan:
    """Record a plan for a manager. A plan on the same effective date is replaced."""
    tier = get_tier(tier_name)
    result = await db.execute(
        select(Plan).where(
            Plan.org_id == org_id,
            Plan.user_id == user_id,
            Plan.effective_date == effective_date,
        )
    )
    plan = result.scalar_one_or_none()

    if plan is None:
        plan = Plan(
            org_id=org_id,
            user_id=user_id,
            tier=tier.name,
            percent=tier.percent,
            effective_date=effective_date,
        )
        db.add(plan)
        action = "Created"
    else:
        plan.tier = tier.name
        plan.percent = tier.percent
        action = "Replaced"

    await db.flush()
    logger.info(
        "%s plan for user %s in org %s: %s (%d%%) from %s",
        action,
        user_id,
        org_id,
        tier.display_name,
        tier.percent,
        effective_date,
    )
    return plan
