"""KPI read API router."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from portal.api.deps import get_kpi_engine
from portal.kpi.engine import AggregationEngine
from portal.kpi.periods import parse_month
from portal.models.kpi import KPI
from portal.schemas.kpi import KPIListResponse, KPIResponse

router = APIRouter(prefix="/api/v1/orgs/{org_id}/kpis", tags=["kpis"])


@router.get(
    "",
    response_model=KPIResponse,
    summary="KPIs of a manager for one month",
)
async def get_month_kpis(
    org_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Manager"),
    month: str = Query(..., description="Month as YYYY-MM"),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> KPI:
    """Return the KPI row, or 404 when the month saw no activity."""
    kpi = await kpi_engine.get_month(org_id, user_id, parse_month(month))
    if kpi is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No KPI data for this month",
        )
    return kpi


@router.get(
    "/history",
    response_model=KPIListResponse,
    summary="KPIs of a manager over recent months",
)
async def get_kpi_history(
    org_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Manager"),
    months: int = Query(12, description="Number of calendar months, clamped to the configured maximum"),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Return existing KPI rows for the last ``months`` months, oldest first."""
    items = await kpi_engine.history(org_id, user_id, months)
    return {"items": items, "months": kpi_engine.clamp_months(months)}
