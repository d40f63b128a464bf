"""Pydantic v2 schemas for KPI reads."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class KPIResponse(BaseModel):
    """One manager's aggregate for one calendar month."""

    org_id: uuid.UUID
    user_id: uuid.UUID
    month: date
    gross_revenue_cents: int
    expenses_cents: int
    net_revenue_cents: int
    fee_percent: int | None = None
    nights_booked: int
    occupancy_rate: float
    vacancy_rate: float
    properties: int
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class KPIListResponse(BaseModel):
    """KPI rows for a manager, oldest month first."""

    items: list[KPIResponse]
    months: int
