"""
Booking model linking a member to a term.

Key design decisions:
- Unique constraint on (term_id, user_id): one row per pair, reused across
  cancel/rejoin cycles. It also backstops concurrent duplicate joins.
- `term_cancelled` marks bookings voided by staff; members cannot reactivate them.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship

from fitstudio.db.base import Base, TimestampMixin
from fitstudio.db.types import UTCDateTime


class BookingStatus:
    ACTIVE = "active"
    CANCELLED = "cancelled"
    TERM_CANCELLED = "term_cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    term_id = Column(Integer, ForeignKey("terms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.ACTIVE)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    # Relationships
    user = relationship("User", back_populates="bookings")
    term = relationship("Term", back_populates="bookings")

    __table_args__ = (
        UniqueConstraint("term_id", "user_id", name="uq_term_user_booking"),
        CheckConstraint(
            "status IN ('active', 'cancelled', 'term_cancelled')",
            name="check_booking_status",
        ),
        # Capacity and weekly-quota counts both filter on status
        Index("ix_bookings_term_status", "term_id", "status"),
        Index("ix_bookings_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, term={self.term_id}, status={self.status})>"
