"""Booking status endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_caller_context, get_db
from app.core.exceptions import NotFoundError
from app.core.middleware import transition_limiter
from app.schemas.booking import BookingStatusResponse, BookingStatusUpdate
from app.services.booking_store import booking_store
from app.services.transition_authorizer import CallerContext, authorize_status_read
from app.services.transition_service import transition_orchestrator

router = APIRouter()


@router.patch(
    "/{booking_id}/status",
    response_model=BookingStatusResponse,
    dependencies=[Depends(transition_limiter)],
)
async def update_booking_status(
    booking_id: UUID,
    request: BookingStatusUpdate,
    caller: Annotated[CallerContext, Depends(get_caller_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingStatusResponse:
    """Advance a booking one step (assigned pro only).

    Completing the job also captures the authorized payment; if the capture
    fails the booking stays ``completed_pending_payment`` and the request
    still succeeds.
    """
    result = await transition_orchestrator.advance(
        db,
        booking_id=booking_id,
        requested_next_status=request.next_status,
        caller=caller,
    )
    return BookingStatusResponse.model_validate(result.booking)


@router.get("/{booking_id}/status", response_model=BookingStatusResponse)
async def get_booking_status(
    booking_id: UUID,
    caller: Annotated[CallerContext, Depends(get_caller_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingStatusResponse:
    """Get a booking's status (customer, assigned pro, or admin)."""
    booking = await booking_store.get(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking", str(booking_id))

    authorize_status_read(caller, booking.customer_id, booking.pro_id)
    return BookingStatusResponse.model_validate(booking)
