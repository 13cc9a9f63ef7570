"""
Time-driven term lifecycle: due transitions and retention.

Both operations are idempotent bulk statements, safe to run concurrently with
normal traffic:

- `materialize_due_transitions` flips every scheduled term whose start has
  passed to finished. The listing path calls it before reading, and the
  scheduler calls it periodically, so no read path mutates state implicitly.
- `purge_finished_terms` removes finished terms that ended more than the
  retention window ago, bookings first, in one transaction. Both DELETEs
  re-check `status = 'finished'`, so a row that is not finished is never
  removed even if the candidate list was read earlier.
"""

from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import record_term_transition, terms_purged
from fitstudio.models.booking import Booking
from fitstudio.models.term import Term, TermStatus

logger = get_logger(__name__)


async def materialize_due_transitions(db: AsyncSession, now: datetime) -> int:
    """Mark started scheduled terms as finished. Returns the number flipped."""
    result = await db.execute(
        update(Term)
        .where(Term.status == TermStatus.SCHEDULED, Term.starts_at <= now)
        .values(status=TermStatus.FINISHED)
    )
    flipped = result.rowcount or 0
    if flipped:
        record_term_transition(TermStatus.FINISHED, flipped)
        logger.info("terms_materialized", finished=flipped, now=now.isoformat())
    return flipped


async def purge_finished_terms(db: AsyncSession, now: datetime, retention_days: int) -> int:
    """
    Delete finished terms whose `ends_at` is older than `retention_days`
    together with all their bookings. Commits; returns the number of terms removed.
    """
    cutoff = now - timedelta(days=retention_days)
    result = await db.execute(
        select(Term.id).where(Term.status == TermStatus.FINISHED, Term.ends_at < cutoff)
    )
    term_ids = list(result.scalars().all())
    if not term_ids:
        logger.debug("retention_nothing_to_purge", cutoff=cutoff.isoformat())
        return 0

    finished_ids = select(Term.id).where(
        Term.id.in_(term_ids), Term.status == TermStatus.FINISHED
    )
    bookings_result = await db.execute(
        delete(Booking)
        .where(Booking.term_id.in_(finished_ids))
        .execution_options(synchronize_session=False)
    )
    terms_result = await db.execute(
        delete(Term)
        .where(Term.id.in_(term_ids), Term.status == TermStatus.FINISHED)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    purged = terms_result.rowcount or 0
    terms_purged.inc(purged)
    logger.info(
        "retention_purged",
        terms_deleted=purged,
        bookings_deleted=bookings_result.rowcount or 0,
        retention_days=retention_days,
        cutoff=cutoff.isoformat(),
    )
    return purged


def finish_if_due(term: Term, now: datetime) -> bool:
    """
    Single-term form of `materialize_due_transitions` for paths that already
    hold the term row. Returns True when the term was flipped.
    """
    if term.status == TermStatus.SCHEDULED and term.starts_at <= now:
        term.status = TermStatus.FINISHED
        record_term_transition(TermStatus.FINISHED)
        logger.info("term_materialized", term_id=term.id)
        return True
    return False
