"""LedgerEntry model — revenue and expense events per property."""

import uuid
from datetime import date, datetime

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from portal.database import Base, UUIDPrimaryKeyMixin


class LedgerEntry(UUIDPrimaryKeyMixin, Base):
    """One financial event. Positive amounts are revenue, negative are expenses.

    Entries are immutable once created; deleting one reverses its KPI
    contribution against ``attributed_user_id``.
    """

    __tablename__ = "ledger_entries"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Manager credited when the entry was applied
    attributed_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    __table_args__ = (Index("ix_ledger_entries_org_date", "org_id", "entry_date"),)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, property_id={self.property_id}, "
            f"amount_cents={self.amount_cents}, entry_date={self.entry_date})>"
        )
