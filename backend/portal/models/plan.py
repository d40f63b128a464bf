"""Plan model — time-effective commission rate per manager."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from portal.database import Base, UUIDPrimaryKeyMixin


class Plan(UUIDPrimaryKeyMixin, Base):
    """Commission plan for a manager, in effect from ``effective_date`` onwards."""

    __tablename__ = "plans"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    tier: Mapped[str] = mapped_column(String(20), nullable=False)  # launch, elevate, maximize
    percent: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    __table_args__ = (
        UniqueConstraint("org_id", "user_id", "effective_date", name="uq_plans_org_user_effective"),
    )

    def __repr__(self) -> str:
        return (
            f"<Plan(user_id={self.user_id}, tier={self.tier!r}, percent={self.percent}, "
            f"effective_date={self.effective_date})>"
        )
