"""Pydantic v2 request/response schemas for ledger endpoints."""

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from portal.schemas.kpi import KPIResponse


class LedgerEntryCreate(BaseModel):
    """Schema for recording a revenue or expense entry.

    ``amount_cents`` is signed (positive = revenue, negative = expense). When
    ``kind`` is given the amount must be positive and the sign comes from
    ``kind``.
    """

    property_id: uuid.UUID
    amount_cents: int
    entry_date: date
    description: str = Field("", max_length=2000)
    category: str | None = Field(None, max_length=100)
    kind: Literal["revenue", "expense"] | None = None

    @model_validator(mode="after")
    def normalize_amount(self) -> "LedgerEntryCreate":
        """Reject zero amounts and fold ``kind`` into the sign of the amount."""
        if self.amount_cents == 0:
            raise ValueError("amount_cents must be non-zero")
        if self.kind is not None:
            if self.amount_cents < 0:
                raise ValueError("amount_cents must be positive when kind is given")
            if self.kind == "expense":
                self.amount_cents = -self.amount_cents
            self.kind = None
        return self


class LedgerEntryResponse(BaseModel):
    """A stored ledger entry."""

    id: uuid.UUID
    org_id: uuid.UUID
    property_id: uuid.UUID
    amount_cents: int
    entry_date: date
    description: str
    category: str | None = None
    attributed_user_id: uuid.UUID | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerWriteResponse(BaseModel):
    """A ledger entry together with the KPI row it changed."""

    entry: LedgerEntryResponse
    kpi: KPIResponse | None = None


class LedgerListResponse(BaseModel):
    items: list[LedgerEntryResponse]
    total: int
