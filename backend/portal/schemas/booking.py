"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from portal.schemas.kpi import KPIResponse

_STATUS_PATTERN = "^(upcoming|completed|cancelled)$"

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for creating a new booking."""

    property_id: uuid.UUID
    check_in: date
    check_out: date
    status: str = Field("upcoming", pattern=_STATUS_PATTERN)

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreate":
        """Validate that check_out is not before check_in (same-day stays are allowed)."""
        if self.check_out < self.check_in:
            raise ValueError("check_out must not be before check_in")
        return self


class BookingUpdate(BaseModel):
    """Schema for changing a booking's status or dates. All fields optional."""

    check_in: date | None = None
    check_out: date | None = None
    status: str | None = Field(None, pattern=_STATUS_PATTERN)

    @model_validator(mode="after")
    def check_dates(self) -> "BookingUpdate":
        """If both dates are provided, validate check_out >= check_in."""
        if self.check_in is not None and self.check_out is not None and self.check_out < self.check_in:
            raise ValueError("check_out must not be before check_in")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Standard booking response returned from CRUD operations."""

    id: uuid.UUID
    org_id: uuid.UUID
    property_id: uuid.UUID
    check_in: date
    check_out: date
    status: str
    nights: int
    attributed_user_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingWriteResponse(BaseModel):
    """A booking together with the KPI row its write changed, if any."""

    booking: BookingResponse
    kpi: KPIResponse | None = None


class BookingListResponse(BaseModel):
    """Paginated list of bookings."""

    items: list[BookingResponse]
    total: int
