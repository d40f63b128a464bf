"""Pydantic v2 schemas for plan endpoints."""

import uuid
from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class PlanAssign(BaseModel):
    """Put a manager on a tier from ``effective_date`` (defaults to today)."""

    user_id: uuid.UUID
    tier: str = Field(..., pattern="^(launch|elevate|maximize)$")
    effective_date: date | None = None


class PlanResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    user_id: uuid.UUID
    tier: str
    percent: int
    effective_date: date

    model_config = ConfigDict(from_attributes=True)


class PlanAssignResponse(BaseModel):
    """The stored plan and how many KPI rows were repriced."""

    plan: PlanResponse
    repriced: int


class FeePercentResponse(BaseModel):
    user_id: uuid.UUID
    month: date
    fee_percent: int
