"""Shared test helpers."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from app.core.security import create_access_token
from app.domain.booking_state import BOOKING_TRANSITIONS, BookingStatus
from app.models import Booking, Notification, User

INTERNAL_KEY = "test-internal-key"


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def history_through(status: BookingStatus, start: datetime | None = None) -> list[dict]:
    """History entries walking the chain from ``requested`` up to ``status``."""
    at = start or datetime.now(UTC) - timedelta(hours=2)
    current = BookingStatus.REQUESTED
    history = [{"status": current.value, "at": at.isoformat()}]
    if status in (BookingStatus.CANCELLED, BookingStatus.DECLINED):
        return history + [{"status": status.value, "at": (at + timedelta(minutes=5)).isoformat()}]
    while current != status:
        current = BOOKING_TRANSITIONS[current]
        at = at + timedelta(minutes=5)
        history.append({"status": current.value, "at": at.isoformat()})
    return history


async def reload_booking(session_maker, booking_id) -> Booking:
    async with session_maker() as session:
        result = await session.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one()


async def notifications_for(session_maker, user_id) -> list[Notification]:
    async with session_maker() as session:
        result = await session.execute(select(Notification).where(Notification.user_id == user_id))
        return list(result.scalars().all())
