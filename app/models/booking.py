"""Booking database model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base

if TYPE_CHECKING:
    from app.models.user import ServicePro, User


class Booking(Base):
    """Customer/pro service engagement and its lifecycle state.

    ``status`` is the single source of truth; ``status_history`` is the
    append-only audit trail whose last entry always matches it. Rows are
    only mutated through ``BookingStore.conditional_update``.
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    pro_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("service_pros.id"), nullable=False, index=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(40), default="requested", nullable=False, index=True
    )  # requested, accepted, en_route, in_progress, completed_pending_payment, paid, cancelled, declined
    status_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), default=list, nullable=False
    )  # [{"status": ..., "at": ISO-8601}]
    status_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status_updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Payment
    payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    payment_status: Mapped[str] = mapped_column(
        String(20), default="UNPAID", nullable=False
    )  # UNPAID, PAID

    # Lifecycle timestamps (each set once, when the state is entered)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    en_route_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    customer: Mapped["User"] = relationship("User", foreign_keys=[customer_id])
    pro: Mapped["ServicePro"] = relationship("ServicePro", back_populates="bookings")
