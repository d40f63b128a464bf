"""PropertyAssignment model — which manager runs which property."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.database import Base, UUIDPrimaryKeyMixin


class PropertyAssignment(UUIDPrimaryKeyMixin, Base):
    """Links a property to its single responsible manager."""

    __tablename__ = "user_properties"

    org_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    # UNIQUE enforces at most one manager per property
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    # Relationships
    property: Mapped["Property"] = relationship(back_populates="assignment")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return f"<PropertyAssignment(property_id={self.property_id}, user_id={self.user_id})>"
