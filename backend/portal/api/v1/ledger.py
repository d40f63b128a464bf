"""Ledger API router.

Every write goes through the KPI engine **before** the entry itself is
stored, so the KPI row is serialized on its own lock and the request session
never holds a write lock while the engine runs. If storing the entry fails
after the engine succeeded, the KPI contribution is reversed again.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_db, get_kpi_engine
from portal.kpi.engine import AggregationEngine
from portal.models.ledger_entry import LedgerEntry
from portal.models.property import Property
from portal.schemas.common import KPI_ERROR_RESPONSES, MessageResponse
from portal.schemas.ledger import LedgerEntryCreate, LedgerListResponse, LedgerWriteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/orgs/{org_id}/ledger", tags=["ledger"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_property(db: AsyncSession, org_id: uuid.UUID, property_id: uuid.UUID) -> Property:
    """Fetch a property of the org or raise ``HTTPException 404``."""
    result = await db.execute(select(Property).where(Property.id == property_id, Property.org_id == org_id))
    prop = result.scalar_one_or_none()
    if prop is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Property not found",
        )
    return prop


async def _get_entry(db: AsyncSession, org_id: uuid.UUID, entry_id: uuid.UUID) -> LedgerEntry:
    result = await db.execute(select(LedgerEntry).where(LedgerEntry.id == entry_id, LedgerEntry.org_id == org_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ledger entry not found",
        )
    return entry


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=LedgerWriteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a revenue or expense entry",
    responses=KPI_ERROR_RESPONSES,
)
async def create_ledger_entry(
    org_id: uuid.UUID,
    body: LedgerEntryCreate,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Apply the entry to its manager's KPI row, then store it.

    Returns 422 when the property has no assigned manager and 503 when the
    KPI row stays locked by other writers.
    """
    await _get_property(db, org_id, body.property_id)

    entry = LedgerEntry(
        id=uuid.uuid4(),
        org_id=org_id,
        **body.model_dump(exclude={"kind"}),
    )
    update = await kpi_engine.apply_ledger_entry(entry)
    entry.attributed_user_id = update.user_id

    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError:
        logger.error("Storing ledger entry %s failed, reversing its KPI contribution", entry.id)
        await db.rollback()
        await kpi_engine.reverse_ledger_entry(entry)
        raise

    await db.refresh(entry)
    return {"entry": entry, "kpi": update.kpi}


@router.get(
    "",
    response_model=LedgerListResponse,
    summary="List ledger entries of the org",
)
async def list_ledger_entries(
    org_id: uuid.UUID,
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(50, ge=1, le=200, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    base_query = select(LedgerEntry).where(LedgerEntry.org_id == org_id)
    count_query = select(func.count()).select_from(LedgerEntry).where(LedgerEntry.org_id == org_id)

    if property_id is not None:
        base_query = base_query.where(LedgerEntry.property_id == property_id)
        count_query = count_query.where(LedgerEntry.property_id == property_id)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        base_query.order_by(LedgerEntry.entry_date.desc(), LedgerEntry.created_at.desc()).offset(skip).limit(limit)
    )
    return {"items": list(result.scalars().all()), "total": total}


@router.delete(
    "/{entry_id}",
    response_model=MessageResponse,
    summary="Delete a ledger entry",
    responses=KPI_ERROR_RESPONSES,
)
async def delete_ledger_entry(
    org_id: uuid.UUID,
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Reverse the entry's KPI contribution, then delete it."""
    entry = await _get_entry(db, org_id, entry_id)
    await kpi_engine.reverse_ledger_entry(entry)

    await db.delete(entry)
    await db.flush()
    return {"message": "Ledger entry deleted"}
