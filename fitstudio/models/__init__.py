from fitstudio.models.user import User, UserRole
from fitstudio.models.term import Term, TermStatus
from fitstudio.models.booking import Booking, BookingStatus

__all__ = ["User", "UserRole", "Term", "TermStatus", "Booking", "BookingStatus"]
