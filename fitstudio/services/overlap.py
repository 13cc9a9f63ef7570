"""
Overlap checker for the term schedule.

Two intervals overlap when `a.start < b.end AND a.end > b.start` (half-open),
so back-to-back terms such as [10:00, 12:00) and [12:00, 14:00) are allowed.
Only `scheduled` terms take part; cancelled and finished ones free their slot.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.models.term import Term, TermStatus


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    return a_start < b_end and a_end > b_start


async def find_overlapping_term(
    db: AsyncSession,
    starts_at: datetime,
    ends_at: datetime,
    exclude_id: Optional[int] = None,
) -> Optional[Term]:
    """Return one scheduled term overlapping the interval, if any. Uses ix_terms_status_window."""
    query = select(Term).where(
        Term.status == TermStatus.SCHEDULED,
        Term.starts_at < ends_at,
        Term.ends_at > starts_at,
    )
    if exclude_id is not None:
        query = query.where(Term.id != exclude_id)

    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def has_overlap(
    db: AsyncSession,
    starts_at: datetime,
    ends_at: datetime,
    exclude_id: Optional[int] = None,
) -> bool:
    return await find_overlapping_term(db, starts_at, ends_at, exclude_id) is not None


def overlaps_any(starts_at: datetime, ends_at: datetime, intervals: Iterable[tuple[datetime, datetime]]) -> bool:
    """In-memory counterpart used for candidates not yet persisted."""
    return any(intervals_overlap(starts_at, ends_at, s, e) for s, e in intervals)
