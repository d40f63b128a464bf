"""KPI model — monthly performance snapshot per (organization, manager)."""

import uuid
from datetime import date

from sqlalchemy import BigInteger, Date, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portal.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class KPI(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Aggregate for one manager and calendar month, mutated in place.

    ``month`` is always the first day of the month. Rows are created on the
    first contributing event and never deleted.
    """

    __tablename__ = "kpis"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    month: Mapped[date] = mapped_column(Date, nullable=False)

    gross_revenue_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    expenses_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_revenue_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fee_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    nights_booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    occupancy_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vacancy_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    properties: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("org_id", "user_id", "month", name="uq_kpis_org_user_month"),)
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<KPI(user_id={self.user_id}, month={self.month}, gross={self.gross_revenue_cents}, "
            f"expenses={self.expenses_cents}, nights={self.nights_booked})>"
        )
