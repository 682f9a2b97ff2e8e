"""Booking store gateway.

The only code that reads or writes ``bookings`` rows. Writes are
optimistic: every update carries the status the caller observed and is
applied by the database only if the row still has it.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.booking_state import LEGACY_STATUS_ALIASES, BookingStatus
from app.domain.payment_state import PaymentStatus
from app.models.booking import Booking

logger = logging.getLogger(__name__)

# Columns a transition may write; customer_id and pro_id are never written.
WRITABLE_FIELDS = frozenset(
    {
        "status",
        "status_history",
        "status_updated_at",
        "status_updated_by",
        "payment_status",
        "accepted_at",
        "en_route_at",
        "started_at",
        "completed_at",
        "paid_at",
    }
)

_AWAITING_PAYMENT_VALUES = [BookingStatus.COMPLETED_PENDING_PAYMENT.value] + [
    raw
    for raw, status in LEGACY_STATUS_ALIASES.items()
    if status == BookingStatus.COMPLETED_PENDING_PAYMENT
]


class BookingStore:
    """Reads and conditionally updates bookings."""

    async def get(self, db: AsyncSession, booking_id: UUID) -> Booking | None:
        """Load a booking, bypassing any stale copy in the session."""
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def conditional_update(
        self,
        db: AsyncSession,
        booking_id: UUID,
        expected_status: str,
        patch: dict[str, Any],
    ) -> Booking | None:
        """Apply ``patch`` only if the row's status still equals ``expected_status``.

        Args:
            db: Database session
            booking_id: Booking to update
            expected_status: Stored status value the patch was computed from
            patch: Column values to write

        Returns:
            The updated booking, or None if no row matched (missing booking or
            status changed since it was read)
        """
        unknown = set(patch) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable by a transition: {sorted(unknown)}")

        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected_status)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                f"Conditional update matched no row: booking={booking_id} "
                f"expected_status={expected_status}"
            )
            return None

        return await self.get(db, booking_id)

    async def list_pending_captures(
        self,
        db: AsyncSession,
        completed_before: datetime,
        limit: int = 100,
    ) -> list[Booking]:
        """Bookings whose charge still needs capturing."""
        result = await db.execute(
            select(Booking)
            .where(
                Booking.status.in_(_AWAITING_PAYMENT_VALUES),
                Booking.payment_status == PaymentStatus.UNPAID.value,
                Booking.payment_intent_id.is_not(None),
                Booking.completed_at <= completed_before,
            )
            .order_by(Booking.completed_at)
            .limit(limit)
        )
        return list(result.scalars().all())


# Singleton instance
booking_store = BookingStore()
