"""Payment state machine."""

from enum import Enum

from app.domain.booking_state import BookingStatus


class PaymentStatus(str, Enum):
    """Payment status of a booking's authorized charge."""

    UNPAID = "UNPAID"
    PAID = "PAID"


PAYMENT_TRANSITIONS = {
    PaymentStatus.UNPAID: {PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
}


def can_capture(
    booking_status: BookingStatus | None,
    payment_status: str | None,
    payment_intent_id: str | None,
) -> tuple[bool, str | None]:
    """Check whether a booking is waiting for its charge to be captured.

    Args:
        booking_status: Normalized booking status
        payment_status: Stored payment status
        payment_intent_id: Processor id of the authorized charge

    Returns:
        Tuple of (can_capture, reason)
    """
    if booking_status != BookingStatus.COMPLETED_PENDING_PAYMENT:
        label = booking_status.value if booking_status else "unknown"
        return False, f"Booking is not awaiting payment (status: {label})"

    try:
        current = PaymentStatus(payment_status or PaymentStatus.UNPAID.value)
    except ValueError:
        return False, f"Unknown payment status {payment_status}"

    if PaymentStatus.PAID not in PAYMENT_TRANSITIONS[current]:
        return False, "Booking is already paid"

    if not payment_intent_id or not payment_intent_id.strip():
        return False, "No payment authorization found"

    return True, None
