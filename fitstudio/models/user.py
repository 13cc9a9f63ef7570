"""
User model.

Users are owned by the identity service; the booking core reads them to
resolve a principal's role and to show trainer names.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from fitstudio.db.base import Base, TimestampMixin


class UserRole:
    MEMBER = "member"
    SUBSCRIBER = "subscriber"
    TRAINER = "trainer"
    ADMIN = "admin"

    STAFF = (TRAINER, ADMIN)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.MEMBER)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    bookings = relationship("Booking", back_populates="user")

    __table_args__ = (
        CheckConstraint(
            "role IN ('member', 'subscriber', 'trainer', 'admin')",
            name="check_user_role",
        ),
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
