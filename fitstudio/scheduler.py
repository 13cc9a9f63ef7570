"""
Background jobs: periodic lifecycle sweep and daily retention purge.

Both jobs are housekeeping. A failed run is logged and counted, the
transaction rolled back, and the next scheduled run tries again; nothing
propagates into the scheduler or the web process.
"""

from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitstudio.core.clock import Clock, get_clock, studio_tz
from fitstudio.core.config import get_settings
from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import background_job_failures
from fitstudio.db.session import AsyncSessionLocal
from fitstudio.services.cache_service import invalidate_term_cache
from fitstudio.services.lifecycle_service import materialize_due_transitions, purge_finished_terms

logger = get_logger(__name__)
settings = get_settings()

SWEEP_JOB_ID = "term_lifecycle_sweep"
RETENTION_JOB_ID = "finished_term_retention"


async def run_lifecycle_sweep(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    clock: Optional[Clock] = None,
) -> int:
    clock = clock or get_clock()
    async with session_factory() as db:
        try:
            flipped = await materialize_due_transitions(db, clock.now())
            await db.commit()
        except Exception:
            await db.rollback()
            background_job_failures.labels(job=SWEEP_JOB_ID).inc()
            logger.exception("lifecycle_sweep_failed")
            return 0

    if flipped:
        await invalidate_term_cache()
    return flipped


async def run_retention_purge(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    clock: Optional[Clock] = None,
    retention_days: Optional[int] = None,
) -> int:
    clock = clock or get_clock()
    days = retention_days if retention_days is not None else settings.RETENTION_DAYS
    async with session_factory() as db:
        try:
            return await purge_finished_terms(db, clock.now(), days)
        except Exception:
            await db.rollback()
            background_job_failures.labels(job=RETENTION_JOB_ID).inc()
            logger.exception("retention_purge_failed", retention_days=days)
            return 0


def create_scheduler(
    sweep: Callable = run_lifecycle_sweep,
    retention: Callable = run_retention_purge,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=studio_tz())
    scheduler.add_job(
        sweep,
        "interval",
        id=SWEEP_JOB_ID,
        minutes=settings.SWEEP_INTERVAL_MINUTES,
        coalesce=True,
        max_instances=1,
        replace_existing=True,
    )
    scheduler.add_job(
        retention,
        "cron",
        id=RETENTION_JOB_ID,
        hour=settings.RETENTION_CRON_HOUR,
        minute=settings.RETENTION_CRON_MINUTE,
        coalesce=True,
        max_instances=1,
        replace_existing=True,
    )
    return scheduler
