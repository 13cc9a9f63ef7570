"""
Pydantic schemas for term-related request/response validation.
"""

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from fitstudio.core.config import get_settings


class TermCreate(BaseModel):
    capacity: int = Field(..., ge=1)
    starts_at: datetime
    ends_at: datetime
    workout_description: str = Field("", max_length=2000)
    trainer_id: Optional[int] = None


class TermUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""

    capacity: Optional[int] = Field(None, ge=1)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    workout_description: Optional[str] = Field(None, max_length=2000)
    trainer_id: Optional[int] = None


class TermResponse(BaseModel):
    id: int
    capacity: int
    starts_at: datetime
    ends_at: datetime
    status: str
    trainer_id: int
    workout_description: str
    created_by: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TermListItem(TermResponse):
    booked_count: int = 0
    trainer_name: str = ""


class TermListResponse(BaseModel):
    terms: list[TermListItem]
    cached: bool = False


class TermDeleteResponse(BaseModel):
    ok: bool = True
    term_id: int
    bookings_deleted: int


class WeekGenerateRequest(BaseModel):
    days_of_week: list[int] = Field(..., min_length=1)
    terms_per_day: Literal[2, 3, 4]
    capacity: int = Field(default_factory=lambda: get_settings().DEFAULT_TERM_CAPACITY, ge=1)
    workout_description: str = Field("", max_length=2000)
    trainer_id: Optional[int] = None
    date_from: Optional[date] = None


class SkippedSlot(BaseModel):
    day_of_week: int
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    reason: str


class WeekGenerateResponse(BaseModel):
    inserted_count: int
    skipped_count: int
    skipped: list[SkippedSlot]
