"""Booking-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.booking_state import normalize_status


def _canonical_status(value: str) -> str:
    normalized = normalize_status(value)
    return normalized.value if normalized else value


class BookingStatusUpdate(BaseModel):
    """Body of ``PATCH /bookings/{id}/status``.

    The action name is validated by the state graph, not here, so unknown
    names are reported with the list of accepted actions.
    """

    model_config = ConfigDict(populate_by_name=True)

    next_status: str = Field(..., alias="nextStatus", min_length=1, max_length=40)


class StatusHistoryEntry(BaseModel):
    """One entry of the append-only status history."""

    status: str
    at: datetime

    @field_validator("status")
    @classmethod
    def canonical_status(cls, value: str) -> str:
        return _canonical_status(value)


class BookingStatusResponse(BaseModel):
    """Status projection of a booking.

    Legacy status values are reported under their canonical names.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    status_history: list[StatusHistoryEntry]
    accepted_at: datetime | None
    en_route_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    paid_at: datetime | None
    payment_status: str
    status_updated_at: datetime | None
    status_updated_by: UUID | None

    @field_validator("status")
    @classmethod
    def canonical_status(cls, value: str) -> str:
        return _canonical_status(value)


class CaptureRetryResponse(BaseModel):
    """Result of an internal capture retry."""

    captured: bool
    booking: BookingStatusResponse
