"""Plans API router — fee tiers per manager."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_db, get_kpi_engine
from portal.kpi.engine import AggregationEngine
from portal.kpi.periods import parse_month
from portal.kpi.plans import set_plan
from portal.models.user import User
from portal.schemas.common import KPI_ERROR_RESPONSES
from portal.schemas.plan import FeePercentResponse, PlanAssign, PlanAssignResponse

router = APIRouter(prefix="/api/v1/orgs/{org_id}/plans", tags=["plans"])


async def _require_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )


@router.post(
    "",
    response_model=PlanAssignResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Put a manager on a plan tier",
    responses=KPI_ERROR_RESPONSES,
)
async def assign_plan(
    org_id: uuid.UUID,
    body: PlanAssign,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Store the plan, then reprice the manager's existing KPI rows.

    The plan is committed first so that repricing resolves the new schedule.
    """
    await _require_user(db, body.user_id)

    plan = await set_plan(db, org_id, body.user_id, body.tier, body.effective_date or date.today())
    await db.commit()

    repriced = await kpi_engine.reprice(org_id, body.user_id)
    return {"plan": plan, "repriced": len(repriced)}


@router.get(
    "/fee-percent",
    response_model=FeePercentResponse,
    summary="Fee percent in effect for a manager and month",
)
async def get_fee_percent(
    org_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Manager"),
    month: str = Query(..., description="Month as YYYY-MM"),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    first = parse_month(month)
    fee_percent = await kpi_engine.plans.resolve_fee_percent(org_id, user_id, first)
    return {"user_id": user_id, "month": first, "fee_percent": fee_percent}
