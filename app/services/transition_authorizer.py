"""Authorization of booking status transitions."""

from dataclasses import dataclass
from uuid import UUID

from app.core.exceptions import AuthenticationError, AuthorizationError

PRO_ROLE = "pro"


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller of a request.

    ``pro_id`` is the caller's pro-profile id (``service_pros.id``), or None
    when the user has no pro profile.
    """

    user_id: UUID
    role: str
    pro_id: UUID | None = None


def authorize_transition(caller: CallerContext | None, booking_pro_id: UUID) -> CallerContext:
    """Require the caller to be the pro assigned to the booking.

    Raises:
        AuthenticationError: If there is no authenticated caller
        AuthorizationError: If the caller is not a pro, has no pro profile,
            or is not the booking's assigned pro
    """
    if caller is None:
        raise AuthenticationError("Authentication required")

    if caller.role != PRO_ROLE:
        raise AuthorizationError("Only pros can update booking status")

    if caller.pro_id is None:
        raise AuthorizationError("Pro profile not found")

    if caller.pro_id != booking_pro_id:
        raise AuthorizationError("You are not the pro assigned to this booking")

    return caller


def authorize_status_read(caller: CallerContext | None, customer_id: UUID, pro_id: UUID) -> CallerContext:
    """Allow the booking's customer, its assigned pro, or an admin to read its status."""
    if caller is None:
        raise AuthenticationError("Authentication required")

    if caller.role == "admin":
        return caller
    if caller.user_id == customer_id:
        return caller
    if caller.pro_id is not None and caller.pro_id == pro_id:
        return caller

    raise AuthorizationError("You don't have permission to access this booking")
