"""Shared API dependencies — single import point for all routers.

Re-exports the database session dependency and provides the KPI engine so
that router modules can import everything they need from one place::

    from portal.api.deps import get_db, get_kpi_engine
"""

from functools import lru_cache

from portal.database import get_db
from portal.kpi.engine import AggregationEngine, build_engine


@lru_cache
def get_kpi_engine() -> AggregationEngine:
    """The process-wide aggregation engine, bound to the application database."""
    return build_engine()


__all__ = [
    "get_db",
    "get_kpi_engine",
]
