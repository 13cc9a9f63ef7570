"""
Week generator: expands a day/slot template into concrete terms for the
calendar week after the reference date.

Partial success is the normal outcome. Each candidate either becomes a term
or lands in the skip list with a reason; only malformed requests fail the
whole batch.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.clock import local_date, next_week_monday, studio_tz
from fitstudio.core.exceptions import InvalidInputError
from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import generated_terms
from fitstudio.core.security import Principal
from fitstudio.models.term import Term, TermStatus
from fitstudio.schemas.term import WeekGenerateRequest
from fitstudio.services.locks import SCHEDULE_KEY, lock_schedule, reservation_locks
from fitstudio.services.overlap import has_overlap, overlaps_any
from fitstudio.services.term_service import validate_trainer, initial_status

logger = get_logger(__name__)

# Studio-local clock times per number of terms per day
SLOT_TEMPLATES = {
    2: (("13:00", "15:00"), ("17:00", "19:00")),
    3: (("13:00", "15:00"), ("15:00", "17:00"), ("17:00", "19:00")),
    4: (("12:00", "14:00"), ("14:00", "16:00"), ("16:00", "18:00"), ("18:00", "20:00")),
}

SKIP_INVALID_DAY = "invalid-day"
SKIP_OVERLAP = "overlap"


@dataclass
class WeekGenerationResult:
    inserted: list[Term] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def parse_hm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def day_in_week(week_start: date, day_of_week: int) -> date:
    """Date of `day_of_week` (0=Sunday..6=Saturday) in the week starting Monday `week_start`."""
    offset = 6 if day_of_week == 0 else day_of_week - 1
    return week_start + timedelta(days=offset)


def slot_bounds(day: date, start_hm: str, end_hm: str) -> tuple[datetime, datetime]:
    tz = studio_tz()
    starts_at = datetime.combine(day, parse_hm(start_hm), tzinfo=tz)
    ends_at = datetime.combine(day, parse_hm(end_hm), tzinfo=tz)
    return starts_at.astimezone(timezone.utc), ends_at.astimezone(timezone.utc)


async def generate_week(
    db: AsyncSession,
    request: WeekGenerateRequest,
    principal: Principal,
    now: datetime,
) -> WeekGenerationResult:
    slots = SLOT_TEMPLATES.get(request.terms_per_day)
    if slots is None:
        raise InvalidInputError("terms_per_day must be 2, 3 or 4")
    if not request.days_of_week:
        raise InvalidInputError("days_of_week is required")
    if request.capacity < 1:
        raise InvalidInputError("Invalid capacity")

    trainer_id = request.trainer_id if request.trainer_id is not None else principal.id
    if trainer_id != principal.id:
        await validate_trainer(db, trainer_id)

    reference = request.date_from or local_date(now)
    week_start = next_week_monday(reference)
    result = WeekGenerationResult()
    accepted: list[tuple[datetime, datetime]] = []

    async with reservation_locks.hold(SCHEDULE_KEY):
        await lock_schedule(db)

        for day_of_week in request.days_of_week:
            if not 0 <= day_of_week <= 6:
                result.skipped.append({"day_of_week": day_of_week, "reason": SKIP_INVALID_DAY})
                continue

            day = day_in_week(week_start, day_of_week)
            for start_hm, end_hm in slots:
                starts_at, ends_at = slot_bounds(day, start_hm, end_hm)
                status = initial_status(starts_at, now)

                if status == TermStatus.SCHEDULED:
                    if overlaps_any(starts_at, ends_at, accepted) or await has_overlap(db, starts_at, ends_at):
                        result.skipped.append({
                            "day_of_week": day_of_week,
                            "starts_at": starts_at,
                            "ends_at": ends_at,
                            "reason": SKIP_OVERLAP,
                        })
                        continue
                    accepted.append((starts_at, ends_at))

                result.inserted.append(Term(
                    capacity=request.capacity,
                    starts_at=starts_at,
                    ends_at=ends_at,
                    status=status,
                    trainer_id=trainer_id,
                    workout_description=request.workout_description,
                    created_by=principal.id,
                ))

        if result.inserted:
            db.add_all(result.inserted)
            await db.commit()

    generated_terms.labels(result="inserted").inc(result.inserted_count)
    generated_terms.labels(result="skipped").inc(result.skipped_count)
    logger.info(
        "week_generated",
        week_start=week_start.isoformat(),
        terms_per_day=request.terms_per_day,
        inserted=result.inserted_count,
        skipped=result.skipped_count,
        by=principal.id,
    )
    return result
