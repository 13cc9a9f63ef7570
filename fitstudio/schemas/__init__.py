from fitstudio.schemas.term import (
    TermCreate, TermUpdate, TermResponse, TermListItem, TermListResponse,
    TermDeleteResponse, WeekGenerateRequest, WeekGenerateResponse, SkippedSlot,
)
from fitstudio.schemas.booking import BookingCreate, BookingResponse, MyBookingResponse, BookingTermInfo

__all__ = [
    "TermCreate", "TermUpdate", "TermResponse", "TermListItem", "TermListResponse",
    "TermDeleteResponse", "WeekGenerateRequest", "WeekGenerateResponse", "SkippedSlot",
    "BookingCreate", "BookingResponse", "MyBookingResponse", "BookingTermInfo",
]
