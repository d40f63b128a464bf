"""Property → manager lookup."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.models.assignment import PropertyAssignment


class InMemoryAssignmentResolver:
    """Assignments held in a dict, one manager per property."""

    def __init__(self) -> None:
        self._managers: dict[uuid.UUID, uuid.UUID] = {}
        self._orgs: dict[uuid.UUID, uuid.UUID] = {}

    def assign(self, property_id: uuid.UUID, user_id: uuid.UUID, org_id: uuid.UUID) -> None:
        self._managers[property_id] = user_id
        self._orgs[property_id] = org_id

    def unassign(self, property_id: uuid.UUID) -> None:
        self._managers.pop(property_id, None)
        self._orgs.pop(property_id, None)

    async def resolve_manager(self, property_id: uuid.UUID) -> uuid.UUID | None:
        return self._managers.get(property_id)

    async def count_properties(self, org_id: uuid.UUID, user_id: uuid.UUID) -> int:
        return sum(
            1
            for property_id, manager_id in self._managers.items()
            if manager_id == user_id and self._orgs[property_id] == org_id
        )


class SqlAssignmentResolver:
    """Assignment lookup backed by the ``user_properties`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve_manager(self, property_id: uuid.UUID) -> uuid.UUID | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PropertyAssignment.user_id).where(PropertyAssignment.property_id == property_id)
            )
            return result.scalar_one_or_none()

    async def count_properties(self, org_id: uuid.UUID, user_id: uuid.UUID) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(PropertyAssignment)
                .where(PropertyAssignment.org_id == org_id, PropertyAssignment.user_id == user_id)
            )
            return result.scalar_one()
