"""
Reservation engine: join, cancel and list a member's bookings.

CONCURRENCY STRATEGY: Serialized check-then-act
===============================================

Problem:
  Join is read capacity -> read weekly quota -> write booking. Run unguarded,
  two members racing on the last seat both see `active < capacity` and both
  insert; one member joining two terms of the same week at once can slip
  past the weekly quota the same way.

Solution:
  Every join holds the member's lock and the term's lock (see
  services/locks.py) for the whole sequence, and commits before releasing
  them. Inside the transaction the term and user rows are also selected
  FOR UPDATE so separate worker processes serialize on PostgreSQL.

  - Capacity: only one join per term is ever between "count" and "commit".
  - Weekly quota: only one join per member is ever between "count" and
    "commit", whichever terms are involved.
  - Duplicates: the (term_id, user_id) unique constraint is the backstop. An
    IntegrityError on insert is reported as the same "already booked"
    conflict as the ordinary check.

Counting rules: only `active` bookings count towards either limit, and both
limits reject on `>=`. A member's existing booking for the same term is left
out of the weekly count so reactivating it never counts twice.
"""

import time
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.clock import week_bounds
from fitstudio.core.config import get_settings
from fitstudio.core.exceptions import ConflictError, NotFoundError
from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import booking_cancellations, join_latency, record_booking_attempt
from fitstudio.models.booking import Booking, BookingStatus
from fitstudio.models.term import Term, TermStatus
from fitstudio.models.user import User
from fitstudio.services.lifecycle_service import finish_if_due
from fitstudio.services.locks import reservation_locks, term_key, user_key
from fitstudio.services.term_service import count_active_bookings, load_term

logger = get_logger(__name__)
settings = get_settings()


def _reject(outcome: str, message: str, **context) -> ConflictError:
    record_booking_attempt(outcome)
    logger.warning("booking_rejected", outcome=outcome, **context)
    return ConflictError(message)


async def count_weekly_active_bookings(
    db: AsyncSession,
    user_id: int,
    moment: datetime,
    exclude_term_id: Optional[int] = None,
) -> int:
    """
    Active bookings of `user_id` on terms starting inside the Monday-start
    week that contains `moment`.
    """
    week_start, week_end = week_bounds(moment)
    query = (
        select(func.count())
        .select_from(Booking)
        .join(Term, Term.id == Booking.term_id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.ACTIVE,
            Term.starts_at >= week_start,
            Term.starts_at < week_end,
        )
    )
    if exclude_term_id is not None:
        query = query.where(Booking.term_id != exclude_term_id)

    result = await db.execute(query)
    return result.scalar_one()


async def _lock_user_row(db: AsyncSession, user_id: int) -> None:
    await db.execute(select(User.id).where(User.id == user_id).with_for_update())


async def join_term(
    db: AsyncSession,
    term_id: int,
    user_id: int,
    now: datetime,
) -> tuple[Booking, bool]:
    """
    Book `user_id` onto a term, or reactivate their self-cancelled booking.
    Returns (booking, created); `created` is False for a reactivation.
    """
    started = time.perf_counter()
    try:
        async with reservation_locks.hold(user_key(user_id), term_key(term_id)):
            term = await load_term(db, term_id, for_update=True)
            await _lock_user_row(db, user_id)

            if finish_if_due(term, now):
                await db.commit()
            if term.status != TermStatus.SCHEDULED:
                raise _reject("not_joinable", f"Term not joinable ({term.status})", term_id=term_id)

            result = await db.execute(
                select(Booking).where(Booking.term_id == term_id, Booking.user_id == user_id)
            )
            existing = result.scalar_one_or_none()

            active_count = await count_active_bookings(db, term_id)
            if active_count >= term.capacity:
                raise _reject(
                    "full", "Term is full",
                    term_id=term_id, active=active_count, capacity=term.capacity,
                )

            weekly_count = await count_weekly_active_bookings(
                db, user_id, term.starts_at,
                exclude_term_id=term_id if existing else None,
            )
            if weekly_count >= settings.WEEKLY_BOOKING_LIMIT:
                raise _reject(
                    "weekly_limit", f"Weekly limit reached ({settings.WEEKLY_BOOKING_LIMIT})",
                    term_id=term_id, user_id=user_id, weekly=weekly_count,
                )

            if existing:
                if existing.status == BookingStatus.ACTIVE:
                    raise _reject("already_booked", "Already booked", term_id=term_id, user_id=user_id)
                if existing.status == BookingStatus.TERM_CANCELLED:
                    raise _reject(
                        "term_cancelled", "Term is cancelled, awaiting reactivation",
                        term_id=term_id, user_id=user_id,
                    )

                existing.status = BookingStatus.ACTIVE
                existing.cancelled_at = None
                await db.commit()

                record_booking_attempt("reactivated")
                logger.info("booking_reactivated", booking_id=existing.id, term_id=term_id, user_id=user_id)
                return existing, False

            booking = Booking(term_id=term_id, user_id=user_id, status=BookingStatus.ACTIVE)
            db.add(booking)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise _reject("already_booked", "Already booked", term_id=term_id, user_id=user_id)

            record_booking_attempt("created")
            logger.info(
                "booking_joined",
                booking_id=booking.id,
                term_id=term_id,
                user_id=user_id,
                active=active_count + 1,
                capacity=term.capacity,
            )
            return booking, True
    finally:
        join_latency.observe(time.perf_counter() - started)


async def cancel_by_term(
    db: AsyncSession,
    term_id: int,
    user_id: int,
    now: datetime,
) -> Booking:
    """Member cancels their active booking while the term is still scheduled."""
    async with reservation_locks.hold(term_key(term_id)):
        term = await load_term(db, term_id, for_update=True)
        if finish_if_due(term, now):
            await db.commit()
        if term.status != TermStatus.SCHEDULED:
            raise ConflictError(f"Cannot cancel booking ({term.status})")

        result = await db.execute(
            select(Booking).where(
                Booking.term_id == term_id,
                Booking.user_id == user_id,
                Booking.status == BookingStatus.ACTIVE,
            )
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Active booking not found")

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        await db.commit()

    booking_cancellations.inc()
    logger.info("booking_cancelled", booking_id=booking.id, term_id=term_id, user_id=user_id)
    return booking


async def list_my_bookings(db: AsyncSession, user_id: int) -> list[dict]:
    """Active bookings on still-scheduled terms, most recently created first."""
    result = await db.execute(
        select(Booking, Term, User)
        .join(Term, Term.id == Booking.term_id)
        .outerjoin(User, User.id == Term.trainer_id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.ACTIVE,
            Term.status == TermStatus.SCHEDULED,
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )

    bookings = []
    for booking, term, trainer in result.all():
        bookings.append({
            "id": booking.id,
            "status": booking.status,
            "created_at": booking.created_at,
            "term": {
                "id": term.id,
                "starts_at": term.starts_at,
                "ends_at": term.ends_at,
                "capacity": term.capacity,
                "status": term.status,
                "workout_description": term.workout_description,
                "trainer_id": term.trainer_id,
                "trainer_name": trainer.display_name if trainer else "",
            },
        })
    return bookings
