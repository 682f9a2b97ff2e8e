"""Booking state machine.

The operational lifecycle is a strict chain; every state has at most one
successor:

    requested -> accepted -> en_route -> in_progress
              -> completed_pending_payment -> paid

``cancelled`` and ``declined`` are absorbing states reached through the
cancellation flow and never appear as a forward target here.

Pros request transitions with caller-facing action names (``ACCEPTED``,
``ON_THE_WAY``, ``IN_PROGRESS``, ``COMPLETED``); ``paid`` is only ever
reached by payment capture.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from app.core.exceptions import InvalidRequestError, TransitionConflict


class BookingStatus(str, Enum):
    """Canonical booking states as stored in ``bookings.status``."""

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    EN_ROUTE = "en_route"
    IN_PROGRESS = "in_progress"
    COMPLETED_PENDING_PAYMENT = "completed_pending_payment"
    PAID = "paid"
    CANCELLED = "cancelled"
    DECLINED = "declined"


class TransitionAction(str, Enum):
    """Action names accepted from pros in ``nextStatus``."""

    ACCEPTED = "ACCEPTED"
    ON_THE_WAY = "ON_THE_WAY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


BOOKING_TRANSITIONS: dict[BookingStatus, BookingStatus | None] = {
    BookingStatus.REQUESTED: BookingStatus.ACCEPTED,
    BookingStatus.ACCEPTED: BookingStatus.EN_ROUTE,
    BookingStatus.EN_ROUTE: BookingStatus.IN_PROGRESS,
    BookingStatus.IN_PROGRESS: BookingStatus.COMPLETED_PENDING_PAYMENT,
    BookingStatus.COMPLETED_PENDING_PAYMENT: BookingStatus.PAID,
    BookingStatus.PAID: None,
    BookingStatus.CANCELLED: None,
    BookingStatus.DECLINED: None,
}

TERMINAL_STATUSES = frozenset(
    status for status, successor in BOOKING_TRANSITIONS.items() if successor is None
)

_ACTION_TO_STATUS: dict[TransitionAction, BookingStatus] = {
    TransitionAction.ACCEPTED: BookingStatus.ACCEPTED,
    TransitionAction.ON_THE_WAY: BookingStatus.EN_ROUTE,
    TransitionAction.IN_PROGRESS: BookingStatus.IN_PROGRESS,
    TransitionAction.COMPLETED: BookingStatus.COMPLETED_PENDING_PAYMENT,
}

_STATUS_TO_ACTION: dict[BookingStatus, TransitionAction] = {
    status: action for action, status in _ACTION_TO_STATUS.items()
}

# Values written by older releases. Only read through normalize_status.
LEGACY_STATUS_ALIASES: dict[str, BookingStatus] = {
    "pending": BookingStatus.REQUESTED,
    "on_the_way": BookingStatus.EN_ROUTE,
    "pro_en_route": BookingStatus.EN_ROUTE,
    "awaiting_payment": BookingStatus.COMPLETED_PENDING_PAYMENT,
}

# Denormalized timestamp column set when a booking enters each state.
TIMESTAMP_FIELDS: dict[BookingStatus, str] = {
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.EN_ROUTE: "en_route_at",
    BookingStatus.IN_PROGRESS: "started_at",
    BookingStatus.COMPLETED_PENDING_PAYMENT: "completed_at",
    BookingStatus.PAID: "paid_at",
}


def normalize_status(raw: str | None) -> BookingStatus | None:
    """Map a stored status string to its canonical state.

    Returns None for values that are neither canonical nor a known legacy
    synonym.
    """
    if raw is None:
        return None
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    try:
        return BookingStatus(raw)
    except ValueError:
        return None


def next_allowed(current: BookingStatus | None) -> BookingStatus | None:
    """Return the single state reachable from ``current``, if any."""
    if current is None:
        return None
    return BOOKING_TRANSITIONS.get(current)


def is_valid_transition(current: BookingStatus | None, proposed: BookingStatus) -> bool:
    successor = next_allowed(current)
    return successor is not None and successor == proposed


def action_to_status(action: TransitionAction) -> BookingStatus:
    return _ACTION_TO_STATUS[action]


def status_to_action(status: BookingStatus | None) -> TransitionAction | None:
    """Caller-facing action that leads into ``status``, if pros may request it."""
    if status is None:
        return None
    return _STATUS_TO_ACTION.get(status)


def parse_action(name: str | None) -> TransitionAction:
    """Parse a caller-facing action name.

    Raises:
        InvalidRequestError: If the name is missing or unrecognised
    """
    try:
        return TransitionAction(name)
    except ValueError:
        allowed = ", ".join(action.value for action in TransitionAction)
        raise InvalidRequestError(f"Invalid nextStatus '{name}'. Expected one of: {allowed}")


def allowed_next_action(current: BookingStatus | None) -> TransitionAction | None:
    """Action a pro could request next from ``current``."""
    return status_to_action(next_allowed(current))


def assert_booking_transition(current: BookingStatus | None, target: BookingStatus, raw_current: str | None = None) -> None:
    """Validate a transition against the graph.

    Args:
        current: Normalized stored status (None if unrecognised)
        target: Proposed next status
        raw_current: Stored value, reported when ``current`` is unrecognised

    Raises:
        TransitionConflict: If ``target`` is not the single successor of ``current``
    """
    if is_valid_transition(current, target):
        return

    reported = current.value if current is not None else str(raw_current)
    allowed = allowed_next_action(current)
    raise TransitionConflict(
        current_status=reported,
        allowed_next_status=allowed.value if allowed else None,
        detail=f"Cannot transition to {target.value} from {reported}.",
    )


def _entry_time(entry: dict[str, Any]) -> datetime | None:
    try:
        return datetime.fromisoformat(str(entry["at"]))
    except (KeyError, TypeError, ValueError):
        return None


def build_transition_patch(
    history: list[dict[str, Any]] | None,
    target: BookingStatus,
    now: datetime,
    updated_by: UUID | None,
) -> dict[str, Any]:
    """Column values for entering ``target``.

    The history entry time never precedes the previous entry, so the trail
    stays monotonic even if clocks disagree between writers.
    """
    history = list(history or [])
    at = now
    if history:
        last_at = _entry_time(history[-1])
        if last_at is not None and last_at.tzinfo is not None and last_at > at:
            at = last_at

    patch: dict[str, Any] = {
        "status": target.value,
        "status_history": history + [{"status": target.value, "at": at.isoformat()}],
        "status_updated_at": at,
        "status_updated_by": updated_by,
    }
    timestamp_field = TIMESTAMP_FIELDS.get(target)
    if timestamp_field:
        patch[timestamp_field] = at
    return patch
