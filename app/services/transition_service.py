"""Booking transition orchestration.

Applies one pro-requested step of the booking lifecycle:

    load -> authorize -> validate -> conditional write -> (capture) -> notify

The conditional write is the only point of mutual exclusion. Two callers
that both read the same status can both pass validation, but only one
write matches; the other gets a 409 carrying the state it lost to.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InternalServerError, NotFoundError, TransitionConflict
from app.domain.booking_state import (
    BookingStatus,
    action_to_status,
    allowed_next_action,
    assert_booking_transition,
    build_transition_patch,
    normalize_status,
    parse_action,
)
from app.models.booking import Booking
from app.services.booking_store import BookingStore, booking_store
from app.services.notification_service import NotificationService, notification_service
from app.services.payment_capture_service import (
    PaymentCaptureCoordinator,
    payment_capture_coordinator,
)
from app.services.transition_authorizer import CallerContext, authorize_transition

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    booking: Booking
    status: BookingStatus
    capture_attempted: bool = False
    captured: bool = False


class TransitionOrchestrator:
    """Service for advancing bookings through their lifecycle."""

    def __init__(
        self,
        store: BookingStore | None = None,
        capture: PaymentCaptureCoordinator | None = None,
        notifications: NotificationService | None = None,
    ) -> None:
        self.store = store or booking_store
        self.capture = capture or payment_capture_coordinator
        self.notifications = notifications or notification_service

    async def _conflict(self, db: AsyncSession, booking_id: UUID, target: BookingStatus) -> TransitionConflict:
        """Build the 409 for a write that lost a race, from a fresh read."""
        current = await self.store.get(db, booking_id)
        if current is None:
            return TransitionConflict(
                current_status=None,
                allowed_next_status=None,
                detail="Booking no longer exists.",
            )

        normalized = normalize_status(current.status)
        reported = normalized.value if normalized else current.status
        next_action = allowed_next_action(normalized)
        return TransitionConflict(
            current_status=reported,
            allowed_next_status=next_action.value if next_action else None,
            detail=f"Booking status changed to {reported} before {target.value} could be applied.",
        )

    async def advance(
        self,
        db: AsyncSession,
        booking_id: UUID,
        requested_next_status: str,
        caller: CallerContext | None,
    ) -> TransitionResult:
        """Advance a booking one step on behalf of its assigned pro.

        Args:
            db: Database session
            booking_id: Booking to advance
            requested_next_status: Action name (ACCEPTED, ON_THE_WAY, IN_PROGRESS, COMPLETED)
            caller: Authenticated caller

        Returns:
            TransitionResult with the booking as persisted

        Raises:
            NotFoundError: If the booking does not exist
            AuthenticationError: If there is no caller
            AuthorizationError: If the caller is not the assigned pro
            InvalidRequestError: If the action name is unknown
            TransitionConflict: If the step is not the next one, or another
                writer changed the status first
            InternalServerError: If the write fails
        """
        booking = await self.store.get(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        authorize_transition(caller, booking.pro_id)

        action = parse_action(requested_next_status)
        target = action_to_status(action)
        observed = booking.status
        assert_booking_transition(normalize_status(observed), target, raw_current=observed)

        patch = build_transition_patch(
            booking.status_history,
            target,
            now=datetime.now(UTC),
            updated_by=caller.user_id,
        )

        try:
            updated = await self.store.conditional_update(
                db, booking_id, expected_status=observed, patch=patch
            )
        except SQLAlchemyError:
            await db.rollback()
            logger.exception(f"Failed to write transition {observed} -> {target.value} for booking {booking_id}")
            raise InternalServerError("Failed to update booking status")

        if updated is None:
            logger.warning(
                f"Booking {booking_id} changed from {observed} before {target.value} was written"
            )
            raise await self._conflict(db, booking_id, target)

        await db.commit()
        logger.info(
            f"Booking {booking_id} transitioned {observed} -> {target.value} by user {caller.user_id}"
        )

        result = TransitionResult(booking=updated, status=target)

        if target == BookingStatus.COMPLETED_PENDING_PAYMENT:
            outcome = await self.capture.capture_for_booking(db, updated, updated_by=caller.user_id)
            result.booking = outcome.booking
            result.capture_attempted = outcome.attempted
            result.captured = outcome.captured
            result.status = normalize_status(outcome.booking.status) or target

        # Payment notifications replace the completion message once paid.
        if result.status != BookingStatus.PAID:
            self.notifications.dispatch_status_change(updated.id, updated.customer_id, target)

        return result


# Singleton instance
transition_orchestrator = TransitionOrchestrator()
