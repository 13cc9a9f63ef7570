"""
Term endpoints: listing, administration and week generation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.clock import Clock, get_clock
from fitstudio.core.logging import get_logger
from fitstudio.core.security import Principal, get_current_principal, require_roles
from fitstudio.db.session import get_db
from fitstudio.models.user import UserRole
from fitstudio.schemas.term import (
    TermCreate,
    TermDeleteResponse,
    TermListItem,
    TermListResponse,
    TermResponse,
    TermUpdate,
    WeekGenerateRequest,
    WeekGenerateResponse,
)
from fitstudio.services.cache_service import get_cached_terms, set_cached_terms, invalidate_term_cache
from fitstudio.services.lifecycle_service import materialize_due_transitions
from fitstudio.services.term_service import (
    cancel_term,
    create_term,
    delete_term,
    get_term,
    list_upcoming_terms,
    update_term,
)
from fitstudio.services.week_generator import generate_week

logger = get_logger(__name__)
router = APIRouter(prefix="/terms", tags=["Terms"])

staff_only = require_roles(*UserRole.STAFF)
admin_only = require_roles(UserRole.ADMIN)


@router.get("/", response_model=TermListResponse)
async def list_terms_endpoint(
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """
    Upcoming scheduled terms with booked counts.
    Due transitions are materialized first; the cache is dropped whenever
    that flips anything, so a started term is never served as upcoming.
    """
    now = clock.now()
    flipped = await materialize_due_transitions(db, now)
    await db.commit()
    if flipped:
        await invalidate_term_cache()

    cached = await get_cached_terms()
    if cached is not None:
        logger.info("terms_list_cache_hit", count=len(cached))
        return TermListResponse(terms=cached, cached=True)

    terms = await list_upcoming_terms(db, now)
    items = [TermListItem.model_validate(t).model_dump(mode="json") for t in terms]
    await set_cached_terms(items)
    return TermListResponse(terms=items)


@router.post("/", response_model=TermResponse, status_code=status.HTTP_201_CREATED)
async def create_term_endpoint(
    term_data: TermCreate,
    principal: Principal = Depends(staff_only),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Create a term. Trainers always own what they create; admins may assign a trainer."""
    term = await create_term(db, term_data, principal, clock.now())
    await invalidate_term_cache()
    return term


@router.post("/generate-week", response_model=WeekGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_week_endpoint(
    request: WeekGenerateRequest,
    principal: Principal = Depends(admin_only),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Expand a 2/3/4-slot template into terms for next week. Overlapping slots are skipped."""
    result = await generate_week(db, request, principal, clock.now())
    if result.inserted_count:
        await invalidate_term_cache()
    return WeekGenerateResponse(
        inserted_count=result.inserted_count,
        skipped_count=result.skipped_count,
        skipped=result.skipped,
    )


@router.get("/{term_id}", response_model=TermListItem)
async def get_term_endpoint(
    term_id: int,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    if await materialize_due_transitions(db, clock.now()):
        await db.commit()
        await invalidate_term_cache()
    return await get_term(db, term_id)


@router.patch("/{term_id}", response_model=TermResponse)
async def update_term_endpoint(
    term_id: int,
    term_data: TermUpdate,
    principal: Principal = Depends(staff_only),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Partial edit. Trainers may edit only their own terms; only admins reassign trainers."""
    term = await update_term(db, term_id, term_data, principal, clock.now())
    await invalidate_term_cache()
    return term


@router.post("/{term_id}/cancel", response_model=TermResponse)
async def cancel_term_endpoint(
    term_id: int,
    principal: Principal = Depends(staff_only),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a scheduled term; its active bookings become term_cancelled."""
    term = await cancel_term(db, term_id, principal, clock.now())
    await invalidate_term_cache()
    return term


@router.delete("/{term_id}", response_model=TermDeleteResponse)
async def delete_term_endpoint(
    term_id: int,
    principal: Principal = Depends(staff_only),
    db: AsyncSession = Depends(get_db),
):
    """Delete a term together with all of its bookings."""
    bookings_deleted = await delete_term(db, term_id, principal)
    await invalidate_term_cache()
    return TermDeleteResponse(term_id=term_id, bookings_deleted=bookings_deleted)
