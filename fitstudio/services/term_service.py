"""
Term administration: create, edit, cancel, delete and read terms.

Writers that can change the schedule (create, time edits) hold the schedule
lock while checking for overlaps and committing, so two concurrent writers
cannot both pass the overlap check. Writers touching one term also hold its
term lock, which the reservation engine takes for joins.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.clock import ensure_utc
from fitstudio.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import record_term_transition
from fitstudio.core.security import Principal
from fitstudio.models.booking import Booking, BookingStatus
from fitstudio.models.term import Term, TermStatus
from fitstudio.models.user import User, UserRole
from fitstudio.schemas.term import TermCreate, TermUpdate
from fitstudio.services.lifecycle_service import finish_if_due
from fitstudio.services.locks import SCHEDULE_KEY, lock_schedule, reservation_locks, term_key
from fitstudio.services.overlap import has_overlap

logger = get_logger(__name__)


async def load_term(db: AsyncSession, term_id: int, for_update: bool = False) -> Term:
    query = select(Term).where(Term.id == term_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    term = result.scalar_one_or_none()

    if not term:
        raise NotFoundError(f"Term {term_id} not found")
    return term


async def count_active_bookings(db: AsyncSession, term_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.term_id == term_id, Booking.status == BookingStatus.ACTIVE)
    )
    return result.scalar_one()


def _validate_window(starts_at: datetime, ends_at: datetime) -> None:
    if ends_at <= starts_at:
        raise InvalidInputError("ends_at must be after starts_at")


def _validate_capacity(capacity: Optional[int]) -> None:
    if capacity is None or capacity < 1:
        raise InvalidInputError("Invalid capacity")


async def validate_trainer(db: AsyncSession, trainer_id: int) -> None:
    result = await db.execute(select(User.role).where(User.id == trainer_id))
    role = result.scalar_one_or_none()
    if role not in UserRole.STAFF:
        raise InvalidInputError(f"Invalid trainer_id {trainer_id}")


def _assert_can_manage(term: Term, principal: Principal) -> None:
    """Admins manage every term; trainers only the ones assigned to them."""
    if principal.is_admin:
        return
    if principal.role != UserRole.TRAINER or term.trainer_id != principal.id:
        raise ForbiddenError("Forbidden")


def initial_status(starts_at: datetime, now: datetime) -> str:
    return TermStatus.FINISHED if starts_at <= now else TermStatus.SCHEDULED


async def create_term(
    db: AsyncSession,
    term_data: TermCreate,
    principal: Principal,
    now: datetime,
) -> Term:
    """
    Create a term. A term starting in the past is created finished and skips
    the overlap check; a future one must not overlap any scheduled term.
    """
    _validate_capacity(term_data.capacity)
    starts_at = ensure_utc(term_data.starts_at)
    ends_at = ensure_utc(term_data.ends_at)
    _validate_window(starts_at, ends_at)

    if principal.is_admin:
        trainer_id = term_data.trainer_id if term_data.trainer_id is not None else principal.id
        if trainer_id != principal.id:
            await validate_trainer(db, trainer_id)
    else:
        trainer_id = principal.id

    status = initial_status(starts_at, now)

    async with reservation_locks.hold(SCHEDULE_KEY):
        await lock_schedule(db)
        if status == TermStatus.SCHEDULED and await has_overlap(db, starts_at, ends_at):
            logger.warning("term_overlap_rejected", starts_at=starts_at.isoformat(), ends_at=ends_at.isoformat())
            raise ConflictError("Term overlaps existing term")

        term = Term(
            capacity=term_data.capacity,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status,
            trainer_id=trainer_id,
            workout_description=term_data.workout_description,
            created_by=principal.id,
        )
        db.add(term)
        await db.commit()

    logger.info(
        "term_created",
        term_id=term.id,
        status=status,
        trainer_id=trainer_id,
        created_by=principal.id,
    )
    return term


async def update_term(
    db: AsyncSession,
    term_id: int,
    term_data: TermUpdate,
    principal: Principal,
    now: datetime,
) -> Term:
    """
    Apply a partial update. Everything is validated before the term is
    touched, so a rejected edit leaves it unchanged.
    """
    changes = term_data.model_dump(exclude_unset=True)

    async with reservation_locks.hold(term_key(term_id), SCHEDULE_KEY):
        await lock_schedule(db)
        term = await load_term(db, term_id, for_update=True)
        _assert_can_manage(term, principal)
        # A term that has already started is edited as finished
        finish_if_due(term, now)

        if "trainer_id" in changes:
            if not principal.is_admin:
                raise ForbiddenError("Only admin can change trainer_id")
            if changes["trainer_id"] is None:
                raise InvalidInputError("Invalid trainer_id")
            await validate_trainer(db, changes["trainer_id"])

        if "capacity" in changes:
            _validate_capacity(changes["capacity"])
            active = await count_active_bookings(db, term.id)
            if changes["capacity"] < active:
                raise ConflictError(
                    f"Capacity {changes['capacity']} is below active bookings ({active})"
                )

        if "workout_description" in changes and changes["workout_description"] is None:
            raise InvalidInputError("Invalid workout_description")

        new_status = term.status
        times_changed = changes.get("starts_at") is not None or changes.get("ends_at") is not None
        if times_changed:
            new_starts_at = ensure_utc(changes.get("starts_at") or term.starts_at)
            new_ends_at = ensure_utc(changes.get("ends_at") or term.ends_at)
            _validate_window(new_starts_at, new_ends_at)

            would_finish = new_starts_at <= now
            if term.status == TermStatus.SCHEDULED:
                if would_finish:
                    new_status = TermStatus.FINISHED
                elif await has_overlap(db, new_starts_at, new_ends_at, exclude_id=term.id):
                    logger.warning("term_overlap_rejected", term_id=term.id)
                    raise ConflictError("Term overlaps existing term")

        # All checks passed; apply
        if "capacity" in changes:
            term.capacity = changes["capacity"]
        if "workout_description" in changes:
            term.workout_description = changes["workout_description"]
        if "trainer_id" in changes:
            term.trainer_id = changes["trainer_id"]
        if times_changed:
            term.starts_at = new_starts_at
            term.ends_at = new_ends_at
        if new_status != term.status:
            term.status = new_status
            record_term_transition(new_status)

        await db.commit()

    logger.info("term_updated", term_id=term.id, fields=sorted(changes), status=term.status)
    return term


async def cancel_term(
    db: AsyncSession,
    term_id: int,
    principal: Principal,
    now: datetime,
) -> Term:
    """Cancel a scheduled term and void its active bookings as term_cancelled."""
    async with reservation_locks.hold(term_key(term_id)):
        term = await load_term(db, term_id, for_update=True)
        _assert_can_manage(term, principal)

        if finish_if_due(term, now):
            await db.commit()

        if term.status != TermStatus.SCHEDULED:
            raise ConflictError(f"Term cannot be cancelled ({term.status})")

        result = await db.execute(
            update(Booking)
            .where(Booking.term_id == term.id, Booking.status == BookingStatus.ACTIVE)
            .values(status=BookingStatus.TERM_CANCELLED, cancelled_at=now)
        )
        term.status = TermStatus.CANCELLED
        await db.commit()

    record_term_transition(TermStatus.CANCELLED)
    logger.info("term_cancelled", term_id=term.id, bookings_voided=result.rowcount or 0)
    return term


async def delete_term(db: AsyncSession, term_id: int, principal: Principal) -> int:
    """Delete a term and all of its bookings in one transaction. Returns bookings removed."""
    async with reservation_locks.hold(term_key(term_id)):
        term = await load_term(db, term_id, for_update=True)
        _assert_can_manage(term, principal)

        bookings_result = await db.execute(
            delete(Booking)
            .where(Booking.term_id == term.id)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(Term)
            .where(Term.id == term.id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    bookings_deleted = bookings_result.rowcount or 0
    logger.info("term_deleted", term_id=term_id, bookings_deleted=bookings_deleted, by=principal.id)
    return bookings_deleted


def _term_listing_query():
    booked = (
        select(Booking.term_id, func.count().label("booked_count"))
        .where(Booking.status == BookingStatus.ACTIVE)
        .group_by(Booking.term_id)
        .subquery()
    )
    return (
        select(
            Term,
            func.coalesce(booked.c.booked_count, 0).label("booked_count"),
            User,
        )
        .outerjoin(booked, booked.c.term_id == Term.id)
        .outerjoin(User, User.id == Term.trainer_id)
    )


def _listing_item(row) -> dict:
    term = row[0]
    return {
        "id": term.id,
        "capacity": term.capacity,
        "starts_at": term.starts_at,
        "ends_at": term.ends_at,
        "status": term.status,
        "trainer_id": term.trainer_id,
        "workout_description": term.workout_description,
        "created_by": term.created_by,
        "created_at": term.created_at,
        "booked_count": row.booked_count,
        "trainer_name": row.User.display_name if row.User else "",
    }


async def get_term(db: AsyncSession, term_id: int) -> dict:
    """One term with its active booking count and trainer name."""
    result = await db.execute(_term_listing_query().where(Term.id == term_id))
    row = result.one_or_none()
    if row is None:
        raise NotFoundError(f"Term {term_id} not found")
    return _listing_item(row)


async def list_upcoming_terms(db: AsyncSession, now: datetime) -> list[dict]:
    """
    Scheduled terms starting after `now`, earliest first. Callers materialize
    due transitions first so nothing that has already started is returned as
    scheduled.
    """
    result = await db.execute(
        _term_listing_query()
        .where(Term.status == TermStatus.SCHEDULED, Term.starts_at > now)
        .order_by(Term.starts_at.asc())
    )
    return [_listing_item(row) for row in result.all()]
