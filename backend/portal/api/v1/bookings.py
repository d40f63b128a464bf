"""Bookings API router.

Only entering or leaving ``completed`` changes KPIs. The engine is called
before the booking row is written so that the KPI update commits on its own
and the request session holds no write lock while it runs.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api.deps import get_db, get_kpi_engine
from portal.kpi.engine import AggregationEngine
from portal.kpi.errors import KPIError
from portal.models.booking import Booking, BookingStatus
from portal.models.property import Property
from portal.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingUpdate,
    BookingWriteResponse,
)
from portal.schemas.common import KPI_ERROR_RESPONSES, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/orgs/{org_id}/bookings", tags=["bookings"])

_COMPLETED = BookingStatus.COMPLETED.value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_booking(booking_id: uuid.UUID, org_id: uuid.UUID, db: AsyncSession) -> Booking:
    """Fetch a booking of the org.

    Raises ``HTTPException 404`` when the booking does not exist or belongs
    to another org.
    """
    result = await db.execute(select(Booking).where(Booking.id == booking_id, Booking.org_id == org_id))
    booking = result.scalar_one_or_none()

    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingWriteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new booking",
    responses=KPI_ERROR_RESPONSES,
)
async def create_booking(
    org_id: uuid.UUID,
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Create a booking on a property of the org.

    A booking created as ``completed`` counts as ``upcoming -> completed``.
    """
    prop_result = await db.execute(
        select(Property).where(
            Property.id == body.property_id,
            Property.org_id == org_id,
        )
    )
    if prop_result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Property not found",
        )

    booking = Booking(id=uuid.uuid4(), org_id=org_id, **body.model_dump())
    update = None
    if booking.status == _COMPLETED:
        update = await kpi_engine.on_status_transition(booking, BookingStatus.UPCOMING, BookingStatus.COMPLETED)
        booking.attributed_user_id = update.user_id if update else None

    try:
        db.add(booking)
        await db.commit()
    except SQLAlchemyError:
        logger.error("Storing booking %s failed, reversing its KPI contribution", booking.id)
        await db.rollback()
        if update is not None:
            await kpi_engine.on_booking_deleted(booking)
        raise

    await db.refresh(booking)
    return {"booking": booking, "kpi": update.kpi if update else None}


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List bookings of the org",
)
async def list_bookings(
    org_id: uuid.UUID,
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    status_filter: str | None = Query(None, alias="status", description="Filter by booking status"),
    check_in_from: date | None = Query(None, description="Bookings with check_in >= this date"),
    check_in_to: date | None = Query(None, description="Bookings with check_in <= this date"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(20, ge=1, le=100, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Return a paginated list of bookings of the org."""
    base_query = select(Booking).where(Booking.org_id == org_id)
    count_query = select(func.count()).select_from(Booking).where(Booking.org_id == org_id)

    # Dynamic filters
    if property_id is not None:
        base_query = base_query.where(Booking.property_id == property_id)
        count_query = count_query.where(Booking.property_id == property_id)
    if status_filter is not None:
        base_query = base_query.where(Booking.status == status_filter)
        count_query = count_query.where(Booking.status == status_filter)
    if check_in_from is not None:
        base_query = base_query.where(Booking.check_in >= check_in_from)
        count_query = count_query.where(Booking.check_in >= check_in_from)
    if check_in_to is not None:
        base_query = base_query.where(Booking.check_in <= check_in_to)
        count_query = count_query.where(Booking.check_in <= check_in_to)

    total_result = await db.execute(count_query)
    total = total_result.scalar_one()

    items_query = base_query.order_by(Booking.check_in.desc()).offset(skip).limit(limit)
    result = await db.execute(items_query)
    items = list(result.scalars().all())

    return {"items": items, "total": total}


@router.patch(
    "/{booking_id}",
    response_model=BookingWriteResponse,
    summary="Change a booking's status or dates",
    responses=KPI_ERROR_RESPONSES,
)
async def update_booking(
    org_id: uuid.UUID,
    booking_id: uuid.UUID,
    body: BookingUpdate,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Apply a status and/or date change.

    Moving the dates of a completed booking is applied as leaving
    ``completed`` on the old dates, then entering it again on the new ones.
    """
    booking = await _get_booking(booking_id, org_id, db)
    update_data = body.model_dump(exclude_unset=True, exclude_none=True)

    old_status = booking.status
    new_status = update_data.get("status", old_status)
    check_in = update_data.get("check_in", booking.check_in)
    check_out = update_data.get("check_out", booking.check_out)
    if check_out < check_in:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="check_out must not be before check_in",
        )
    dates_changed = (check_in, check_out) != (booking.check_in, booking.check_out)

    old_dates = (booking.check_in, booking.check_out)
    removed = None
    if old_status == _COMPLETED and (new_status != _COMPLETED or dates_changed):
        removed = await kpi_engine.on_status_transition(booking, BookingStatus.COMPLETED, BookingStatus.UPCOMING)
        booking.attributed_user_id = None

    booking.check_in = check_in
    booking.check_out = check_out

    update = removed
    if new_status == _COMPLETED and (old_status != _COMPLETED or dates_changed):
        try:
            update = await kpi_engine.on_status_transition(booking, BookingStatus.UPCOMING, BookingStatus.COMPLETED)
        except (KPIError, SQLAlchemyError):
            if removed is not None:
                logger.error("Re-crediting booking %s failed, restoring its previous KPI contribution", booking.id)
                booking.check_in, booking.check_out = old_dates
                await kpi_engine.restore_booking(booking, removed.user_id)
            raise
        booking.attributed_user_id = update.user_id if update else None

    booking.status = new_status
    await db.flush()
    await db.refresh(booking)
    return {"booking": booking, "kpi": update.kpi if update else None}


@router.delete(
    "/{booking_id}",
    response_model=MessageResponse,
    summary="Delete a booking",
    responses=KPI_ERROR_RESPONSES,
)
async def delete_booking(
    org_id: uuid.UUID,
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    kpi_engine: AggregationEngine = Depends(get_kpi_engine),
) -> dict:
    """Remove a completed booking's nights from KPIs, then delete it."""
    booking = await _get_booking(booking_id, org_id, db)
    await kpi_engine.on_booking_deleted(booking)

    await db.delete(booking)
    await db.flush()
    return {"message": "Booking deleted"}
