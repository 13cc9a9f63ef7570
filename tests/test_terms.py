"""
Tests for term endpoints: create, edit, cancel, delete, listing.
"""

import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient
from sqlalchemy import func, select

from fitstudio.models.booking import Booking, BookingStatus
from fitstudio.models.term import Term, TermStatus
from tests.conftest import NOW, create_booking, create_term, headers_for


def at(day: int, hour: int, minute: int = 0) -> str:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc).isoformat()


@pytest.mark.asyncio
async def test_trainer_creates_term(client: AsyncClient, trainer):
    """Trainer-created terms are scheduled and owned by the trainer."""
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 12, "starts_at": at(20, 10), "ends_at": at(20, 12), "workout_description": "HIIT"},
        headers=headers_for(trainer),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["trainer_id"] == trainer.id
    assert data["created_by"] == trainer.id
    assert data["workout_description"] == "HIIT"


@pytest.mark.asyncio
async def test_trainer_cannot_assign_other_trainer(client: AsyncClient, trainer, other_trainer):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12), "trainer_id": other_trainer.id},
        headers=headers_for(trainer),
    )
    assert response.status_code == 201
    assert response.json()["trainer_id"] == trainer.id


@pytest.mark.asyncio
async def test_admin_assigns_trainer(client: AsyncClient, admin, trainer):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12), "trainer_id": trainer.id},
        headers=headers_for(admin),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["trainer_id"] == trainer.id
    assert data["created_by"] == admin.id


@pytest.mark.asyncio
async def test_admin_assigning_member_as_trainer_is_invalid(client: AsyncClient, admin, member):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12), "trainer_id": member.id},
        headers=headers_for(admin),
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "InvalidInput"


@pytest.mark.asyncio
async def test_member_cannot_create_term(client: AsyncClient, member):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12)},
        headers=headers_for(member),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_term_unauthenticated(client: AsyncClient):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12)},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_term_invalid_window(client: AsyncClient, trainer):
    """ends_at before starts_at returns 400."""
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 12), "ends_at": at(20, 10)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "InvalidInput"


@pytest.mark.asyncio
async def test_create_term_zero_capacity(client: AsyncClient, trainer):
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 0, "starts_at": at(20, 10), "ends_at": at(20, 12)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_overlapping_term(client: AsyncClient, db_session, trainer):
    """A new term crossing a scheduled one is a conflict."""
    await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))

    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 11), "ends_at": at(20, 13)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "Conflict"


@pytest.mark.asyncio
async def test_touching_terms_do_not_overlap(client: AsyncClient, db_session, trainer):
    await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))

    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 12), "ends_at": at(20, 14)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_past_term_is_finished_and_frees_slot(client: AsyncClient, trainer):
    """A term starting in the past is finished at once and is not part of the overlap check."""
    past = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(14, 8), "ends_at": at(14, 10)},
        headers=headers_for(trainer),
    )
    assert past.status_code == 201
    assert past.json()["status"] == "finished"

    # Same interval again is still allowed: finished terms are outside the overlap universe
    again = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(14, 8), "ends_at": at(14, 10)},
        headers=headers_for(trainer),
    )
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_cancelled_term_frees_slot(client: AsyncClient, db_session, trainer):
    await create_term(
        db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc), status=TermStatus.CANCELLED
    )
    response = await client.post(
        "/api/v1/terms/",
        json={"capacity": 5, "starts_at": at(20, 10), "ends_at": at(20, 12)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_edit_into_overlap_leaves_terms_unchanged(client: AsyncClient, db_session, trainer):
    first = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    second = await create_term(db_session, trainer, datetime(2026, 10, 20, 14, tzinfo=timezone.utc))

    response = await client.patch(
        f"/api/v1/terms/{second.id}",
        json={"starts_at": at(20, 11), "ends_at": at(20, 13), "capacity": 4},
        headers=headers_for(trainer),
    )
    assert response.status_code == 409

    for term, hour in ((first, 10), (second, 14)):
        detail = (await client.get(f"/api/v1/terms/{term.id}", headers=headers_for(trainer))).json()
        assert detail["starts_at"].startswith(f"2026-10-20T{hour}:00")
        assert detail["capacity"] == 10
        assert detail["status"] == "scheduled"


@pytest.mark.asyncio
async def test_edit_own_time_range_excludes_self(client: AsyncClient, db_session, trainer):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    response = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"starts_at": at(20, 11), "ends_at": at(20, 13)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"


@pytest.mark.asyncio
async def test_edit_start_into_past_finishes_term(client: AsyncClient, db_session, trainer):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    response = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"starts_at": at(13, 10), "ends_at": at(13, 12)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "finished"


@pytest.mark.asyncio
async def test_started_term_stays_finished_when_moved_to_future(
    client: AsyncClient, db_session, session_factory, trainer
):
    """A started term the sweep has not reached yet cannot be revived by moving its start."""
    term = await create_term(db_session, trainer, NOW - timedelta(minutes=30))

    response = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"starts_at": at(15, 10), "ends_at": at(15, 12)},
        headers=headers_for(trainer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "finished"

    async with session_factory() as session:
        assert (await session.get(Term, term.id)).status == TermStatus.FINISHED


@pytest.mark.asyncio
async def test_trainer_cannot_edit_foreign_term(client: AsyncClient, db_session, trainer, other_trainer):
    term = await create_term(db_session, other_trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    response = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"workout_description": "mine now"},
        headers=headers_for(trainer),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_only_admin_reassigns_trainer(client: AsyncClient, db_session, admin, trainer, other_trainer):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))

    by_trainer = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"trainer_id": other_trainer.id},
        headers=headers_for(trainer),
    )
    assert by_trainer.status_code == 403

    by_admin = await client.patch(
        f"/api/v1/terms/{term.id}",
        json={"trainer_id": other_trainer.id, "workout_description": "Mobility"},
        headers=headers_for(admin),
    )
    assert by_admin.status_code == 200
    assert by_admin.json()["trainer_id"] == other_trainer.id
    assert by_admin.json()["workout_description"] == "Mobility"


@pytest.mark.asyncio
async def test_capacity_below_active_bookings_rejected(client: AsyncClient, db_session, trainer, members):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc), capacity=5)
    for m in members[:3]:
        await create_booking(db_session, term, m)

    response = await client.patch(
        f"/api/v1/terms/{term.id}", json={"capacity": 2}, headers=headers_for(trainer)
    )
    assert response.status_code == 409

    response = await client.patch(
        f"/api/v1/terms/{term.id}", json={"capacity": 3}, headers=headers_for(trainer)
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_delete_term_removes_bookings(client: AsyncClient, db_session, session_factory, trainer, members):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    await create_booking(db_session, term, members[0])
    await create_booking(db_session, term, members[1], status=BookingStatus.CANCELLED)

    response = await client.delete(f"/api/v1/terms/{term.id}", headers=headers_for(trainer))
    assert response.status_code == 200
    assert response.json()["bookings_deleted"] == 2

    async with session_factory() as session:
        assert await session.get(Term, term.id) is None
        remaining = await session.execute(
            select(func.count()).select_from(Booking).where(Booking.term_id == term.id)
        )
        assert remaining.scalar_one() == 0


@pytest.mark.asyncio
async def test_delete_foreign_term_forbidden(client: AsyncClient, db_session, trainer, other_trainer):
    term = await create_term(db_session, other_trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    response = await client.delete(f"/api/v1/terms/{term.id}", headers=headers_for(trainer))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_missing_term(client: AsyncClient, admin):
    response = await client.delete("/api/v1/terms/99999", headers=headers_for(admin))
    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_cancel_term_voids_active_bookings(client: AsyncClient, db_session, session_factory, trainer, members):
    term = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    active = await create_booking(db_session, term, members[0])
    self_cancelled = await create_booking(db_session, term, members[1], status=BookingStatus.CANCELLED)

    response = await client.post(f"/api/v1/terms/{term.id}/cancel", headers=headers_for(trainer))
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    async with session_factory() as session:
        assert (await session.get(Booking, active.id)).status == BookingStatus.TERM_CANCELLED
        assert (await session.get(Booking, active.id)).cancelled_at is not None
        assert (await session.get(Booking, self_cancelled.id)).status == BookingStatus.CANCELLED

    again = await client.post(f"/api/v1/terms/{term.id}/cancel", headers=headers_for(trainer))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_cancel_started_term_rejected(client: AsyncClient, db_session, session_factory, trainer, member):
    """A class already running is finished, not cancelled; its bookings stay active."""
    term = await create_term(db_session, trainer, NOW - timedelta(minutes=30))
    booking = await create_booking(db_session, term, member)

    response = await client.post(f"/api/v1/terms/{term.id}/cancel", headers=headers_for(trainer))
    assert response.status_code == 409
    assert "finished" in response.json()["detail"]

    async with session_factory() as session:
        assert (await session.get(Term, term.id)).status == TermStatus.FINISHED
        assert (await session.get(Booking, booking.id)).status == BookingStatus.ACTIVE


@pytest.mark.asyncio
async def test_get_term_materializes_started_term(client: AsyncClient, db_session, trainer, member):
    term = await create_term(db_session, trainer, NOW - timedelta(minutes=30))

    response = await client.get(f"/api/v1/terms/{term.id}", headers=headers_for(member))
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "finished"
    assert data["trainer_name"] == "Tina Trainer"


@pytest.mark.asyncio
async def test_list_terms_materializes_and_counts(client: AsyncClient, db_session, session_factory, trainer, members):
    started = await create_term(db_session, trainer, NOW - timedelta(hours=1))
    upcoming = await create_term(db_session, trainer, datetime(2026, 10, 21, 10, tzinfo=timezone.utc), capacity=4)
    earlier = await create_term(db_session, trainer, datetime(2026, 10, 20, 10, tzinfo=timezone.utc))
    await create_booking(db_session, upcoming, members[0])
    await create_booking(db_session, upcoming, members[1])
    await create_booking(db_session, upcoming, members[2], status=BookingStatus.CANCELLED)

    response = await client.get("/api/v1/terms/", headers=headers_for(members[0]))
    assert response.status_code == 200
    terms = response.json()["terms"]
    assert [t["id"] for t in terms] == [earlier.id, upcoming.id]
    assert terms[1]["booked_count"] == 2
    assert terms[0]["booked_count"] == 0
    assert terms[0]["trainer_name"] == "Tina Trainer"

    async with session_factory() as session:
        assert (await session.get(Term, started.id)).status == TermStatus.FINISHED


@pytest.mark.asyncio
async def test_list_terms_requires_auth(client: AsyncClient):
    response = await client.get("/api/v1/terms/")
    assert response.status_code == 401
