"""Pydantic schemas for request/response validation."""

from app.schemas.booking import (
    BookingStatusResponse,
    BookingStatusUpdate,
    CaptureRetryResponse,
    StatusHistoryEntry,
)

__all__ = [
    # Booking
    "BookingStatusUpdate",
    "BookingStatusResponse",
    "StatusHistoryEntry",
    "CaptureRetryResponse",
]
