from app.db.models.booking import ALLOWED_TRANSITIONS, Booking, BookingStatus, Equipment
from app.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Booking",
    "BookingStatus",
    "Equipment",
    "ALLOWED_TRANSITIONS",
]
