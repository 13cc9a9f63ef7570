"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BookingCreate(BaseModel):
    term_id: int


class BookingResponse(BaseModel):
    id: int
    term_id: int
    user_id: int
    status: str
    cancelled_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingTermInfo(BaseModel):
    id: int
    starts_at: datetime
    ends_at: datetime
    capacity: int
    status: str
    workout_description: str
    trainer_id: int
    trainer_name: str


class MyBookingResponse(BaseModel):
    id: int
    status: str
    created_at: datetime
    term: BookingTermInfo
