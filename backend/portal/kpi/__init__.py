"""KPI aggregation engine.

Keeps the per-(organization, manager, month) KPI snapshot in step with
ledger entries and booking status changes.
"""

from portal.kpi.engine import AggregationEngine, build_engine, build_memory_engine
from portal.kpi.errors import (
    InvalidAmountError,
    InvalidDateError,
    InvalidPlanTierError,
    InvalidStatusError,
    KPIError,
    TransientStoreError,
    UnassignedPropertyError,
    ValidationError,
)
from portal.kpi.store import InMemoryKPIStore, KPIKey, KPIUpdate, SqlKPIStore

__all__ = [
    "AggregationEngine",
    "InMemoryKPIStore",
    "InvalidAmountError",
    "InvalidDateError",
    "InvalidPlanTierError",
    "InvalidStatusError",
    "KPIError",
    "KPIKey",
    "KPIUpdate",
    "SqlKPIStore",
    "TransientStoreError",
    "UnassignedPropertyError",
    "ValidationError",
    "build_engine",
    "build_memory_engine",
]
