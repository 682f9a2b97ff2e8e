"""Internal endpoints for trusted callers (reconciliation, ops tooling)."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_internal_caller
from app.schemas.booking import BookingStatusResponse, CaptureRetryResponse
from app.services.payment_capture_service import payment_capture_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_internal_caller)])


@router.post("/bookings/{booking_id}/capture", response_model=CaptureRetryResponse)
async def retry_booking_capture(
    booking_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CaptureRetryResponse:
    """Retry payment capture for a booking left awaiting payment."""
    logger.info(f"Manual capture retry requested for booking {booking_id}")
    outcome = await payment_capture_coordinator.retry_capture(db, booking_id)
    return CaptureRetryResponse(
        captured=outcome.captured,
        booking=BookingStatusResponse.model_validate(outcome.booking),
    )
