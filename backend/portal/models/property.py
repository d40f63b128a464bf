"""Property model — rentals managed on behalf of an organization."""

import uuid
from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.database import Base, UUIDPrimaryKeyMixin


class Property(UUIDPrimaryKeyMixin, Base):
    """A rental unit owned by an organization and run by one manager."""

    __tablename__ = "properties"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    # Relationships
    assignment: Mapped["PropertyAssignment"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", uselist=False, lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, org_id={self.org_id}, name={self.name!r})>"
