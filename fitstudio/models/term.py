"""
Term model: a bookable time slot.

Key design decisions:
- Status only moves forward: scheduled -> finished (time-driven) or
  scheduled -> cancelled (manual). Finished and cancelled terms are outside
  the overlap universe, so a freed slot can be scheduled again.
- Overlap queries filter on (status, starts_at, ends_at); the composite index
  covers them.
- No denormalized booked counter: capacity is checked against a COUNT of
  active bookings while the term row is locked.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from fitstudio.db.base import Base, TimestampMixin
from fitstudio.db.types import UTCDateTime


class TermStatus:
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    FINISHED = "finished"


class Term(Base, TimestampMixin):
    __tablename__ = "terms"

    id = Column(Integer, primary_key=True, index=True)
    capacity = Column(Integer, nullable=False)
    starts_at = Column(UTCDateTime(), nullable=False)
    ends_at = Column(UTCDateTime(), nullable=False)
    status = Column(String(20), nullable=False, default=TermStatus.SCHEDULED)
    trainer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    workout_description = Column(Text, nullable=False, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Relationships
    trainer = relationship("User", foreign_keys=[trainer_id])
    bookings = relationship("Booking", back_populates="term", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_term_capacity_positive"),
        CheckConstraint("ends_at > starts_at", name="check_term_ends_after_start"),
        CheckConstraint(
            "status IN ('scheduled', 'cancelled', 'finished')",
            name="check_term_status",
        ),
        Index("ix_terms_starts_at", "starts_at"),
        Index("ix_terms_ends_at", "ends_at"),
        Index("ix_terms_status_window", "status", "starts_at", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<Term(id={self.id}, {self.starts_at}-{self.ends_at}, status={self.status})>"
