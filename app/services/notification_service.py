"""Notification Service for booking lifecycle events.

Creates in-app notification rows. Delivery is best-effort: every public
``dispatch_*`` method schedules detached work and returns immediately, and
``notify`` never raises. Failures are logged only and can never affect the
booking transition that triggered them.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app import database
from app.core.background_tasks import BackgroundTaskRunner, background_tasks
from app.domain.booking_state import BookingStatus
from app.models.notification import Notification
from app.models.user import ServicePro

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    kind: str
    title: str
    body: str


class NotificationService:
    """Service for sending booking notifications."""

    # Notification types
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_STATUS = "booking_status"
    PAYMENT_CAPTURED = "payment_captured"

    # Customer-facing message per state entered. States not listed send nothing.
    STATUS_MESSAGES: dict[BookingStatus, NotificationMessage] = {
        BookingStatus.ACCEPTED: NotificationMessage(
            BOOKING_ACCEPTED,
            "Booking accepted",
            "Your booking was accepted. Card has been authorized for payment.",
        ),
        BookingStatus.EN_ROUTE: NotificationMessage(
            BOOKING_STATUS,
            "Pro is on the way",
            "Your pro is heading to you now.",
        ),
        BookingStatus.IN_PROGRESS: NotificationMessage(
            BOOKING_STATUS,
            "Job started",
            "Your pro has started working on your booking.",
        ),
        BookingStatus.COMPLETED_PENDING_PAYMENT: NotificationMessage(
            BOOKING_STATUS,
            "Job completed",
            "Your pro marked the job complete. Payment will be processed shortly.",
        ),
    }

    PAYMENT_MESSAGE_CUSTOMER = NotificationMessage(
        PAYMENT_CAPTURED,
        "Payment completed",
        "Your payment has been processed successfully.",
    )
    PAYMENT_MESSAGE_PRO = NotificationMessage(
        PAYMENT_CAPTURED,
        "Payment completed",
        "Payment for this booking has been captured.",
    )

    def __init__(self, runner: BackgroundTaskRunner | None = None) -> None:
        self.runner = runner or background_tasks

    @staticmethod
    def customer_deep_link(booking_id: UUID) -> str:
        return f"/bookings/{booking_id}"

    @staticmethod
    def pro_deep_link(booking_id: UUID) -> str:
        return f"/pro/bookings/{booking_id}"

    # ==================== IN-APP NOTIFICATIONS ====================

    async def create_notification(
        self,
        db: AsyncSession,
        user_id: UUID,
        notification_type: str,
        title: str,
        body: str | None = None,
        booking_id: UUID | None = None,
        deep_link: str | None = None,
    ) -> Notification:
        """Insert a notification row in the given session."""
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            body=body,
            booking_id=booking_id,
            deep_link=deep_link,
        )
        db.add(notification)
        await db.flush()
        return notification

    async def notify(
        self,
        user_id: UUID,
        kind: str,
        title: str,
        body: str | None,
        booking_id: UUID | None,
        deep_link: str | None,
    ) -> None:
        """Record a notification in its own session. Never raises.

        Args:
            user_id: User to notify
            kind: Notification type
            title: Notification title
            body: Notification body text
            booking_id: Related booking
            deep_link: In-app link opened from the notification
        """
        try:
            async with database.get_db_context() as db:
                await self.create_notification(
                    db,
                    user_id=user_id,
                    notification_type=kind,
                    title=title,
                    body=body,
                    booking_id=booking_id,
                    deep_link=deep_link,
                )
        except Exception:
            logger.exception(
                f"Failed to create notification: user={user_id} kind={kind} booking={booking_id}"
            )

    async def notify_pro(
        self,
        pro_id: UUID,
        kind: str,
        title: str,
        body: str | None,
        booking_id: UUID | None,
        deep_link: str | None,
    ) -> None:
        """Notify the user behind a pro profile. Never raises."""
        try:
            async with database.get_db_context() as db:
                result = await db.execute(
                    select(ServicePro.user_id).where(ServicePro.id == pro_id)
                )
                user_id = result.scalar_one_or_none()
        except Exception:
            logger.exception(f"Failed to resolve user for pro {pro_id}")
            return

        if user_id is None:
            logger.warning(f"No user found for pro {pro_id}; notification skipped")
            return

        await self.notify(user_id, kind, title, body, booking_id, deep_link)

    # ==================== BOOKING EVENTS ====================

    def dispatch_status_change(self, booking_id: UUID, customer_id: UUID, status: BookingStatus) -> bool:
        """Schedule the customer notification for a state the booking entered.

        Returns:
            bool: True if a notification was scheduled
        """
        message = self.STATUS_MESSAGES.get(status)
        if message is None:
            return False

        self.runner.submit(
            self.notify(
                user_id=customer_id,
                kind=message.kind,
                title=message.title,
                body=message.body,
                booking_id=booking_id,
                deep_link=self.customer_deep_link(booking_id),
            ),
            name=f"notify:{status.value}:{booking_id}",
        )
        return True

    def dispatch_payment_captured(self, booking_id: UUID, customer_id: UUID, pro_id: UUID) -> None:
        """Schedule payment notifications for both parties."""
        customer_message = self.PAYMENT_MESSAGE_CUSTOMER
        self.runner.submit(
            self.notify(
                user_id=customer_id,
                kind=customer_message.kind,
                title=customer_message.title,
                body=customer_message.body,
                booking_id=booking_id,
                deep_link=self.customer_deep_link(booking_id),
            ),
            name=f"notify:paid:customer:{booking_id}",
        )

        pro_message = self.PAYMENT_MESSAGE_PRO
        self.runner.submit(
            self.notify_pro(
                pro_id=pro_id,
                kind=pro_message.kind,
                title=pro_message.title,
                body=pro_message.body,
                booking_id=booking_id,
                deep_link=self.pro_deep_link(booking_id),
            ),
            name=f"notify:paid:pro:{booking_id}",
        )


# Singleton instance
notification_service = NotificationService()
