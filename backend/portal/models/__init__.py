"""SQLAlchemy models for the host portal.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from portal.models.assignment import PropertyAssignment
from portal.models.booking import Booking, BookingStatus
from portal.models.kpi import KPI
from portal.models.ledger_entry import LedgerEntry
from portal.models.plan import Plan
from portal.models.property import Property
from portal.models.user import User

__all__ = [
    "Booking",
    "BookingStatus",
    "KPI",
    "LedgerEntry",
    "Plan",
    "Property",
    "PropertyAssignment",
    "User",
]
