"""Database models."""

from app.models.booking import Booking
from app.models.notification import Notification
from app.models.user import ServicePro, User

__all__ = [
    # User
    "User",
    "ServicePro",
    # Booking
    "Booking",
    # Notification
    "Notification",
]
