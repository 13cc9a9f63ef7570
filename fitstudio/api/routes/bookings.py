"""
Booking endpoints backed by the serialized reservation engine.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.clock import Clock, get_clock
from fitstudio.core.logging import get_logger
from fitstudio.core.security import Principal, get_current_principal
from fitstudio.db.session import get_db
from fitstudio.schemas.booking import BookingCreate, BookingResponse, MyBookingResponse
from fitstudio.services.booking_service import cancel_by_term, join_term, list_my_bookings
from fitstudio.services.cache_service import invalidate_term_cache
from fitstudio.services.lifecycle_service import materialize_due_transitions

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def join_term_endpoint(
    booking_data: BookingCreate,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """
    Join a term, or rejoin one you cancelled yourself.

    Returns 201 for a new booking and 200 when an earlier booking is
    reactivated (same booking id). Full terms, the weekly limit and duplicate
    bookings are reported as 409.
    """
    booking, created = await join_term(db, booking_data.term_id, principal.id, clock.now())
    if not created:
        response.status_code = status.HTTP_200_OK
    # booked_count in the listing changed
    await invalidate_term_cache()
    return booking


@router.post("/cancel-by-term/{term_id}", response_model=BookingResponse)
async def cancel_by_term_endpoint(
    term_id: int,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your active booking on a term that is still scheduled."""
    booking = await cancel_by_term(db, term_id, principal.id, clock.now())
    await invalidate_term_cache()
    return booking


@router.get("/mine", response_model=list[MyBookingResponse])
async def list_my_bookings_endpoint(
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Your active bookings on upcoming terms, newest first."""
    if await materialize_due_transitions(db, clock.now()):
        await db.commit()
        await invalidate_term_cache()
    return await list_my_bookings(db, principal.id)
