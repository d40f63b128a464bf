"""Tests for booking endpoints and their KPI side effects."""

import sqlite3
import uuid
from collections.abc import AsyncGenerator
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from portal.api.deps import get_db
from portal.kpi.engine import AggregationEngine
from portal.kpi.errors import TransientStoreError
from portal.kpi.store import KPIKey
from portal.main import app
from portal.models.assignment import PropertyAssignment
from portal.models.booking import BookingStatus

pytestmark = pytest.mark.asyncio

MARCH = date(2024, 3, 1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _url(portfolio, suffix: str = "") -> str:
    return f"/api/v1/orgs/{portfolio.org_id}/bookings{suffix}"


def _payload(portfolio, **overrides) -> dict:
    payload = {
        "property_id": str(portfolio.assigned.id),
        "check_in": "2024-03-01",
        "check_out": "2024-03-05",
    }
    payload.update(overrides)
    return payload


async def _nights(client: AsyncClient, portfolio, month: str = "2024-03") -> int | None:
    response = await client.get(
        f"/api/v1/orgs/{portfolio.org_id}/kpis",
        params={"user_id": str(portfolio.manager.id), "month": month},
    )
    if response.status_code == 404:
        return None
    return response.json()["nights_booked"]


# ---------------------------------------------------------------------------
# POST /api/v1/orgs/{org_id}/bookings
# ---------------------------------------------------------------------------


class TestCreateBooking:
    async def test_defaults_to_upcoming(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(_url(portfolio), json=_payload(portfolio))

        assert response.status_code == 201
        data = response.json()
        assert data["booking"]["status"] == "upcoming"
        assert data["booking"]["nights"] == 4
        assert data["booking"]["attributed_user_id"] is None
        assert data["kpi"] is None
        assert await _nights(client, portfolio) is None

    async def test_created_completed_counts_nights(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(_url(portfolio), json=_payload(portfolio, status="completed"))

        assert response.status_code == 201
        data = response.json()
        assert data["booking"]["attributed_user_id"] == str(portfolio.manager.id)
        assert data["kpi"]["nights_booked"] == 4
        assert data["kpi"]["occupancy_rate"] == pytest.approx(4 / 31)
        assert data["kpi"]["vacancy_rate"] == pytest.approx(27 / 31)

    async def test_completed_on_unassigned_property(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(
            _url(portfolio), json=_payload(portfolio, property_id=str(portfolio.unassigned.id), status="completed")
        )

        assert response.status_code == 201
        assert response.json()["kpi"] is None
        assert response.json()["booking"]["attributed_user_id"] is None

    async def test_same_day_stay_is_allowed(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(
            _url(portfolio), json=_payload(portfolio, check_out="2024-03-01", status="completed")
        )

        assert response.status_code == 201
        assert response.json()["booking"]["nights"] == 0
        assert response.json()["kpi"] is None

    async def test_check_out_before_check_in(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(_url(portfolio), json=_payload(portfolio, check_out="2024-02-28"))
        assert response.status_code == 422

    async def test_invalid_status(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(_url(portfolio), json=_payload(portfolio, status="checked_out"))
        assert response.status_code == 422

    async def test_unknown_property(self, client: AsyncClient, portfolio) -> None:
        response = await client.post(_url(portfolio), json=_payload(portfolio, property_id=str(uuid.uuid4())))
        assert response.status_code == 404

    async def test_failed_store_reverses_kpi_contribution(
        self, client: AsyncClient, portfolio, test_engine: AsyncEngine, kpi_engine: AggregationEngine
    ) -> None:
        await client.post(_url(portfolio), json=_payload(portfolio, check_in="2024-03-20", check_out="2024-03-22", status="completed"))

        class FailingCommitSession(AsyncSession):
            async def commit(self) -> None:
                raise OperationalError("COMMIT", {}, sqlite3.OperationalError("disk I/O error"))

        async def failing_get_db() -> AsyncGenerator[AsyncSession, None]:
            async with FailingCommitSession(bind=test_engine, expire_on_commit=False) as session:
                try:
                    yield session
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = failing_get_db

        with pytest.raises(OperationalError):
            await client.post(_url(portfolio), json=_payload(portfolio, status="completed"))

        kpi = await kpi_engine.get_month(portfolio.org_id, portfolio.manager.id, MARCH)
        assert kpi.nights_booked == 2


# ---------------------------------------------------------------------------
# GET /api/v1/orgs/{org_id}/bookings
# ---------------------------------------------------------------------------


class TestListBookings:
    async def test_status_filter(self, client: AsyncClient, portfolio) -> None:
        await client.post(_url(portfolio), json=_payload(portfolio))
        await client.post(_url(portfolio), json=_payload(portfolio, check_in="2024-03-10", check_out="2024-03-12", status="completed"))

        response = await client.get(_url(portfolio))
        assert response.json()["total"] == 2

        completed = await client.get(_url(portfolio), params={"status": "completed"})
        assert completed.json()["total"] == 1
        assert completed.json()["items"][0]["check_in"] == "2024-03-10"


# ---------------------------------------------------------------------------
# PATCH /api/v1/orgs/{org_id}/bookings/{booking_id}
# ---------------------------------------------------------------------------


class TestUpdateBooking:
    async def _create(self, client: AsyncClient, portfolio, **overrides) -> str:
        response = await client.post(_url(portfolio), json=_payload(portfolio, **overrides))
        assert response.status_code == 201, response.text
        return response.json()["booking"]["id"]

    async def test_complete_then_cancel(self, client: AsyncClient, portfolio) -> None:
        booking_id = await self._create(client, portfolio)

        completed = await client.patch(_url(portfolio, f"/{booking_id}"), json={"status": "completed"})
        assert completed.status_code == 200
        assert completed.json()["kpi"]["nights_booked"] == 4
        assert completed.json()["booking"]["attributed_user_id"] == str(portfolio.manager.id)

        cancelled = await client.patch(_url(portfolio, f"/{booking_id}"), json={"status": "cancelled"})
        assert cancelled.status_code == 200
        assert cancelled.json()["kpi"]["nights_booked"] == 0
        assert cancelled.json()["booking"]["status"] == "cancelled"
        assert cancelled.json()["booking"]["attributed_user_id"] is None

    async def test_upcoming_to_cancelled_is_noop(self, client: AsyncClient, portfolio) -> None:
        booking_id = await self._create(client, portfolio)

        response = await client.patch(_url(portfolio, f"/{booking_id}"), json={"status": "cancelled"})

        assert response.status_code == 200
        assert response.json()["kpi"] is None
        assert await _nights(client, portfolio) is None

    async def test_moving_completed_stay_to_another_month(self, client: AsyncClient, portfolio) -> None:
        booking_id = await self._create(client, portfolio, status="completed")

        response = await client.patch(
            _url(portfolio, f"/{booking_id}"), json={"check_in": "2024-04-10", "check_out": "2024-04-16"}
        )

        assert response.status_code == 200
        assert response.json()["kpi"]["month"] == "2024-04-01"
        assert response.json()["kpi"]["nights_booked"] == 6
        assert await _nights(client, portfolio, "2024-03") == 0
        assert await _nights(client, portfolio, "2024-04") == 6

    async def test_lengthening_completed_stay(self, client: AsyncClient, portfolio) -> None:
        booking_id = await self._create(client, portfolio, status="completed")

        response = await client.patch(_url(portfolio, f"/{booking_id}"), json={"check_out": "2024-03-08"})

        assert response.status_code == 200
        assert await _nights(client, portfolio) == 7

    async def test_failed_move_keeps_original_nights(
        self, client: AsyncClient, portfolio, kpi_engine: AggregationEngine
    ) -> None:
        await self._create(client, portfolio, check_in="2024-03-20", check_out="2024-03-22", status="completed")
        booking_id = await self._create(client, portfolio, status="completed")
        assert await _nights(client, portfolio) == 6

        credit = kpi_engine.on_status_transition
        key = KPIKey(portfolio.org_id, portfolio.manager.id, date(2024, 4, 1))

        async def busy_on_credit(booking, old_status, new_status):
            if new_status is BookingStatus.COMPLETED:
                raise TransientStoreError(key, 3)
            return await credit(booking, old_status, new_status)

        with patch.object(kpi_engine, "on_status_transition", AsyncMock(side_effect=busy_on_credit)):
            response = await client.patch(
                _url(portfolio, f"/{booking_id}"), json={"check_in": "2024-04-10", "check_out": "2024-04-16"}
            )

        assert response.status_code == 503
        assert await _nights(client, portfolio, "2024-03") == 6
        assert await _nights(client, portfolio, "2024-04") is None

        listed = await client.get(_url(portfolio), params={"check_in_from": "2024-03-01", "check_in_to": "2024-03-01"})
        booking = listed.json()["items"][0]
        assert booking["check_in"] == "2024-03-01"
        assert booking["status"] == "completed"
        assert booking["attributed_user_id"] == str(portfolio.manager.id)

        await client.delete(_url(portfolio, f"/{booking_id}"))
        assert await _nights(client, portfolio) == 2

    async def test_dates_must_stay_ordered(self, client: AsyncClient, portfolio) -> None:
        booking_id = await self._create(client, portfolio, status="completed")

        response = await client.patch(_url(portfolio, f"/{booking_id}"), json={"check_out": "2024-02-20"})

        assert response.status_code == 422
        assert await _nights(client, portfolio) == 4

    async def test_unknown_booking(self, client: AsyncClient, portfolio) -> None:
        response = await client.patch(_url(portfolio, f"/{uuid.uuid4()}"), json={"status": "completed"})
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# DELETE /api/v1/orgs/{org_id}/bookings/{booking_id}
# ---------------------------------------------------------------------------


class TestDeleteBooking:
    async def test_delete_completed_removes_nights(self, client: AsyncClient, portfolio) -> None:
        created = await client.post(_url(portfolio), json=_payload(portfolio, status="completed"))
        booking_id = created.json()["booking"]["id"]

        response = await client.delete(_url(portfolio, f"/{booking_id}"))

        assert response.status_code == 200
        assert response.json()["message"] == "Booking deleted"
        assert await _nights(client, portfolio) == 0
        assert (await client.get(_url(portfolio))).json()["total"] == 0

    async def test_delete_uncredited_booking_after_assignment(
        self, client: AsyncClient, portfolio, db_session: AsyncSession
    ) -> None:
        await client.post(_url(portfolio), json=_payload(portfolio, status="completed"))
        created = await client.post(
            _url(portfolio),
            json=_payload(
                portfolio,
                property_id=str(portfolio.unassigned.id),
                check_in="2024-03-10",
                check_out="2024-03-13",
                status="completed",
            ),
        )
        assert created.json()["kpi"] is None

        db_session.add(
            PropertyAssignment(org_id=portfolio.org_id, property_id=portfolio.unassigned.id, user_id=portfolio.manager.id)
        )
        await db_session.commit()

        response = await client.delete(_url(portfolio, f"/{created.json()['booking']['id']}"))

        assert response.status_code == 200
        assert await _nights(client, portfolio) == 4

    async def test_delete_upcoming_leaves_kpis(self, client: AsyncClient, portfolio) -> None:
        await client.post(_url(portfolio), json=_payload(portfolio, check_in="2024-03-20", check_out="2024-03-22", status="completed"))
        created = await client.post(_url(portfolio), json=_payload(portfolio))

        await client.delete(_url(portfolio, f"/{created.json()['booking']['id']}"))

        assert await _nights(client, portfolio) == 2
