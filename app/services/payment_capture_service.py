"""Payment capture coordination.

Runs after a booking's ``completed_pending_payment`` write has committed:
captures the authorized charge and, on success, performs a second
conditional write ``completed_pending_payment -> paid``. There is no
transaction spanning the two writes; a failed or timed-out capture leaves
the booking at ``completed_pending_payment`` with ``UNPAID``, which is the
state the reconciliation job (``retry_capture``) picks up.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundError, TransitionConflict
from app.domain.booking_state import (
    BookingStatus,
    allowed_next_action,
    build_transition_patch,
    normalize_status,
)
from app.domain.payment_state import PaymentStatus, can_capture
from app.gateways.base import PaymentResult
from app.models.booking import Booking
from app.services.booking_store import BookingStore, booking_store
from app.services.gateway_service import GatewayService, gateway_service
from app.services.notification_service import NotificationService, notification_service

logger = logging.getLogger(__name__)


@dataclass
class CaptureOutcome:
    """Result of a capture attempt for one booking."""

    booking: Booking
    attempted: bool
    captured: bool
    error: str | None = None


class PaymentCaptureCoordinator:
    """Captures authorized charges and records the ``paid`` transition."""

    def __init__(
        self,
        store: BookingStore | None = None,
        gateways: GatewayService | None = None,
        notifications: NotificationService | None = None,
    ) -> None:
        self.store = store or booking_store
        self.gateways = gateways or gateway_service
        self.notifications = notifications or notification_service

    @staticmethod
    def idempotency_key(booking_id: UUID) -> str:
        return f"booking-capture-{booking_id}"

    async def _capture(self, booking: Booking) -> PaymentResult:
        """Call the processor with a bounded timeout.

        Timeouts and unexpected errors are reported as unsuccessful results;
        neither implies the charge failed at the processor.
        """
        intent_id = booking.payment_intent_id.strip()
        try:
            return await asyncio.wait_for(
                self.gateways.capture_payment(
                    transaction_id=intent_id,
                    idempotency_key=self.idempotency_key(booking.id),
                ),
                timeout=settings.payment_capture_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return PaymentResult(
                success=False,
                transaction_id=intent_id,
                error_message=(
                    f"Capture timed out after {settings.payment_capture_timeout_seconds}s"
                ),
            )
        except Exception as e:
            logger.exception(f"Payment capture raised for booking {booking.id}")
            return PaymentResult(success=False, transaction_id=intent_id, error_message=str(e))

    async def _record_paid(
        self,
        db: AsyncSession,
        booking: Booking,
        updated_by: UUID | None,
    ) -> Booking | None:
        """Second conditional write: ``completed_pending_payment -> paid``."""
        patch = build_transition_patch(
            booking.status_history,
            BookingStatus.PAID,
            now=datetime.now(UTC),
            updated_by=updated_by,
        )
        patch["payment_status"] = PaymentStatus.PAID.value

        updated = await self.store.conditional_update(
            db, booking.id, expected_status=booking.status, patch=patch
        )
        if updated is None:
            return None

        await db.commit()
        return updated

    async def capture_for_booking(
        self,
        db: AsyncSession,
        booking: Booking,
        updated_by: UUID | None = None,
    ) -> CaptureOutcome:
        """Capture the booking's charge and mark it paid. Never raises for
        processor failures.

        Args:
            db: Database session (the booking's completion must be committed)
            booking: Booking in ``completed_pending_payment``
            updated_by: User recorded as ``status_updated_by`` on the paid write

        Returns:
            CaptureOutcome; ``booking`` is the freshest known row
        """
        allowed, reason = can_capture(
            normalize_status(booking.status), booking.payment_status, booking.payment_intent_id
        )
        if not allowed:
            logger.warning(f"Skipping capture for booking {booking.id}: {reason}")
            return CaptureOutcome(booking=booking, attempted=False, captured=False, error=reason)

        result = await self._capture(booking)
        if not result.success:
            logger.warning(
                f"Payment capture failed for booking {booking.id} "
                f"(intent={booking.payment_intent_id}): {result.error_message or result.status}; "
                "booking left awaiting payment"
            )
            return CaptureOutcome(
                booking=booking, attempted=True, captured=False, error=result.error_message
            )

        return await self._finish_capture(db, booking, updated_by)

    async def _finish_capture(
        self,
        db: AsyncSession,
        booking: Booking,
        updated_by: UUID | None,
    ) -> CaptureOutcome:
        try:
            paid = await self._record_paid(db, booking, updated_by)
        except SQLAlchemyError:
            # Rollback expires session state; keep the loaded completion row.
            if booking in db:
                db.expunge(booking)
            await db.rollback()
            logger.exception(
                f"Charge captured for booking {booking.id} (intent={booking.payment_intent_id}) "
                "but the paid write failed; left for capture retry"
            )
            return CaptureOutcome(
                booking=booking,
                attempted=True,
                captured=True,
                error="Payment captured but could not be recorded",
            )

        if paid is None:
            current = await self.store.get(db, booking.id)
            logger.error(
                f"Charge captured for booking {booking.id} but its status changed to "
                f"{current.status if current else 'missing'} before it could be marked paid"
            )
            return CaptureOutcome(
                booking=current or booking,
                attempted=True,
                captured=True,
                error="Booking status changed before it could be marked paid",
            )

        logger.info(f"Booking {booking.id} paid (intent={booking.payment_intent_id})")
        self.notifications.dispatch_payment_captured(paid.id, paid.customer_id, paid.pro_id)
        return CaptureOutcome(booking=paid, attempted=True, captured=True)

    async def retry_capture(
        self,
        db: AsyncSession,
        booking_id: UUID,
        updated_by: UUID | None = None,
    ) -> CaptureOutcome:
        """Capture again for a booking left awaiting payment.

        Asks the processor first: a capture that timed out earlier may have
        gone through, in which case only the paid write is performed.

        Raises:
            NotFoundError: If the booking does not exist
            TransitionConflict: If the booking is not awaiting capture
        """
        booking = await self.store.get(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        current = normalize_status(booking.status)
        allowed, reason = can_capture(current, booking.payment_status, booking.payment_intent_id)
        if not allowed:
            next_action = allowed_next_action(current)
            raise TransitionConflict(
                current_status=current.value if current else booking.status,
                allowed_next_status=next_action.value if next_action else None,
                detail=reason,
            )

        try:
            verified = await asyncio.wait_for(
                self.gateways.verify_payment(booking.payment_intent_id.strip()),
                timeout=settings.payment_capture_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Could not verify intent for booking {booking_id}: {e}")
            verified = None

        if verified is not None and verified.success:
            logger.info(f"Intent for booking {booking_id} already captured; recording payment")
            return await self._finish_capture(db, booking, updated_by)

        return await self.capture_for_booking(db, booking, updated_by)


# Singleton instance
payment_capture_coordinator = PaymentCaptureCoordinator()
