"""Booking model — tracks property reservations."""

import enum
import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portal.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BookingStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation of a property for specific dates.

    Only completed bookings count towards nights booked.
    """

    __tablename__ = "bookings"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=BookingStatus.UPCOMING.value,
        index=True,
    )  # upcoming, completed, cancelled
    # Manager credited with the nights while the booking is completed
    attributed_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    __table_args__ = (Index("ix_bookings_check_in", "check_in"),)

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, property_id={self.property_id}, status={self.status})>"
