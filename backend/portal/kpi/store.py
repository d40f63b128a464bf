"""KPI store — atomic read-modify-write of monthly KPI rows.

Both stores expose the same surface:

- ``read_or_create`` / ``write`` — the two halves of one update;
- ``update(key, mutate)`` — runs both halves as one serialized unit for the
  key and returns the committed row;
- ``get`` / ``list_for_user`` — plain reads.

``SqlKPIStore`` serializes writers on the same key with an
``INSERT ... ON CONFLICT DO NOTHING`` followed by ``SELECT ... FOR UPDATE``
inside a single transaction, and retries lock timeouts, deadlocks and stale
versions a bounded number of times. ``InMemoryKPIStore`` uses one
``asyncio.Lock`` per key.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import NamedTuple

from sqlalchemy import inspect, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from portal.config import settings
from portal.kpi.errors import TransientStoreError
from portal.kpi.periods import month_start
from portal.models.kpi import KPI

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}


class KPIKey(NamedTuple):
    org_id: uuid.UUID
    user_id: uuid.UUID
    month: date

    @classmethod
    def for_date(cls, org_id: uuid.UUID, user_id: uuid.UUID, day: date) -> "KPIKey":
        return cls(org_id, user_id, month_start(day))

    def __str__(self) -> str:
        return f"{self.org_id}/{self.user_id}/{self.month:%Y-%m}"


Mutation = Callable[[KPI], None]


@dataclass(frozen=True)
class KPIUpdate:
    """The KPI row an event was written to, as committed."""

    key: KPIKey
    kpi: KPI

    @property
    def user_id(self) -> uuid.UUID:
        return self.key.user_id


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _blank_values(key: KPIKey) -> dict:
    return {
        "id": uuid.uuid4(),
        "org_id": key.org_id,
        "user_id": key.user_id,
        "month": key.month,
        "gross_revenue_cents": 0,
        "expenses_cents": 0,
        "net_revenue_cents": 0,
        "nights_booked": 0,
        "occupancy_rate": 0.0,
        "vacancy_rate": 1.0,
        "properties": 0,
        "version": 1,
    }


def new_kpi(key: KPIKey) -> KPI:
    """A zeroed, not yet persisted KPI row for ``key``."""
    return KPI(**_blank_values(key))


def copy_kpi(row: KPI) -> KPI:
    """Detached copy of every mapped column of ``row``."""
    return KPI(**{attr.key: getattr(row, attr.key) for attr in inspect(KPI).column_attrs})


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    # SQLite reports a busy database as OperationalError "database is locked"
    return "database is locked" in str(orig or exc)


class SqlKPIStore:
    """KPI rows in the ``kpis`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_timeout_ms: int | None = None,
        max_attempts: int | None = None,
        retry_backoff_ms: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.lock_timeout_ms = settings.kpi_lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        self.max_attempts = settings.kpi_max_attempts if max_attempts is None else max_attempts
        self.retry_backoff_ms = settings.kpi_retry_backoff_ms if retry_backoff_ms is None else retry_backoff_ms

    @staticmethod
    def _key_filter(key: KPIKey):
        return (KPI.org_id == key.org_id, KPI.user_id == key.user_id, KPI.month == key.month)

    async def _select_for_update(self, session: AsyncSession, key: KPIKey) -> KPI | None:
        result = await session.execute(
            select(KPI)
            .where(*self._key_filter(key))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _insert_blank(self, session: AsyncSession, key: KPIKey) -> bool:
        """Insert a zeroed row unless one exists. Returns False if the dialect has no upsert."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(KPI)
        elif dialect == "sqlite":
            stmt = sqlite_insert(KPI)
        else:
            return False
        stmt = stmt.values(**_blank_values(key)).on_conflict_do_nothing(
            index_elements=["org_id", "user_id", "month"]
        )
        await session.execute(stmt)
        return True

    async def read_or_create(self, session: AsyncSession, key: KPIKey) -> KPI:
        """Return the locked row for ``key``, creating it if needed.

        Must run inside a transaction on ``session``; the lock is held until
        that transaction ends.
        """
        if not await self._insert_blank(session, key):
            row = await self._select_for_update(session, key)
            if row is not None:
                return row
            try:
                async with session.begin_nested():
                    session.add(new_kpi(key))
            except IntegrityError:
                logger.debug("KPI row %s created concurrently, re-reading", key)
        row = await self._select_for_update(session, key)
        if row is None:
            raise RuntimeError(f"KPI row {key} vanished after insert")
        return row

    async def write(self, session: AsyncSession, row: KPI) -> None:
        row.updated_at = _utcnow()
        session.add(row)
        await session.flush()

    async def _bound_lock_wait(self, session: AsyncSession) -> None:
        if session.get_bind().dialect.name == "postgresql":
            await session.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'"))

    async def update(self, key: KPIKey, mutate: Mutation, *, create: bool = True) -> KPI | None:
        """Apply ``mutate`` to the row for ``key`` in one transaction.

        With ``create=False`` a missing row is left missing and None is
        returned. Nothing is committed if ``mutate`` raises or the write
        fails. Lock contention is retried up to ``max_attempts`` times, then
        surfaces as ``TransientStoreError``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        await self._bound_lock_wait(session)
                        if create:
                            row = await self.read_or_create(session, key)
                        else:
                            row = await self._select_for_update(session, key)
                            if row is None:
                                return None
                        mutate(row)
                        await self.write(session, row)
                return row
            except (DBAPIError, StaleDataError) as exc:
                if not _is_transient(exc):
                    raise
                if attempt >= self.max_attempts:
                    logger.warning("KPI row %s still busy after %d attempts: %s", key, attempt, exc)
                    raise TransientStoreError(key, attempt) from exc
                logger.info("KPI row %s busy (attempt %d/%d), retrying", key, attempt, self.max_attempts)
                await asyncio.sleep(self.retry_backoff_ms * attempt / 1000)

    async def get(self, key: KPIKey) -> KPI | None:
        async with self._session_factory() as session:
            result = await session.execute(select(KPI).where(*self._key_filter(key)))
            return result.scalar_one_or_none()

    async def list_for_user(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        since: date | None = None,
        until: date | None = None,
    ) -> list[KPI]:
        query = select(KPI).where(KPI.org_id == org_id, KPI.user_id == user_id)
        if since is not None:
            query = query.where(KPI.month >= since)
        if until is not None:
            query = query.where(KPI.month <= until)
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(KPI.month))
            return list(result.scalars().all())


class InMemoryKPIStore:
    """KPI rows in a dict, one lock per key. Rows are copied in and out."""

    def __init__(self) -> None:
        self._rows: dict[KPIKey, KPI] = {}
        self._locks: dict[KPIKey, asyncio.Lock] = {}

    def _lock(self, key: KPIKey) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    async def read_or_create(self, key: KPIKey) -> KPI:
        row = self._rows.get(key)
        return copy_kpi(row) if row is not None else new_kpi(key)

    async def write(self, row: KPI) -> None:
        key = KPIKey(row.org_id, row.user_id, row.month)
        current = self._rows.get(key)
        now = _utcnow()
        if current is None:
            row.created_at = now
        else:
            row.version = current.version + 1
        row.updated_at = now
        self._rows[key] = copy_kpi(row)

    async def update(self, key: KPIKey, mutate: Mutation, *, create: bool = True) -> KPI | None:
        async with self._lock(key):
            if not create and key not in self._rows:
                return None
            row = await self.read_or_create(key)
            mutate(row)
            await self.write(row)
            return copy_kpi(row)

    async def get(self, key: KPIKey) -> KPI | None:
        row = self._rows.get(key)
        return copy_kpi(row) if row is not None else None

    async def list_for_user(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        since: date | None = None,
        until: date | None = None,
    ) -> list[KPI]:
        rows = [
            copy_kpi(row)
            for key, row in self._rows.items()
            if key.org_id == org_id
            and key.user_id == user_id
            and (since is None or key.month >= since)
            and (until is None or key.month <= until)
        ]
        return sorted(rows, key=lambda row: row.month)

    def __len__(self) -> int:
        return len(self._rows)


KPIStore = SqlKPIStore | InMemoryKPIStore
