"""Celery background tasks."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from celery import shared_task

from app import database
from app.config import settings
from app.core.background_tasks import background_tasks
from app.core.exceptions import AppException
from app.services.booking_store import booking_store
from app.services.payment_capture_service import payment_capture_coordinator

logger = logging.getLogger(__name__)

# Seconds to wait for notifications scheduled by a task before its loop closes
TASK_DRAIN_TIMEOUT = 30.0


def run_async(coro):
    """Run async function in sync context.

    Each task gets a fresh event loop, so pooled connections and detached
    notification work are settled before the loop closes.
    """

    async def runner():
        try:
            return await coro
        finally:
            await background_tasks.drain(timeout=TASK_DRAIN_TIMEOUT)
            await database.engine.dispose()

    return asyncio.run(runner())


# ==================== PAYMENT TASKS ====================


@shared_task(bind=True, max_retries=3)
def retry_pending_captures(self):
    """Retry capture for bookings stuck in ``completed_pending_payment``.

    Runs every 10 minutes. Bookings completed within the grace period are
    left alone so the capture started at completion can finish.
    """
    try:
        summary = run_async(_retry_pending_captures())
        return {"status": "success", **summary}
    except Exception as exc:
        self.retry(exc=exc, countdown=60)


async def _retry_pending_captures() -> dict[str, int]:
    """Async implementation of the capture retry sweep."""
    cutoff = datetime.now(UTC) - timedelta(minutes=settings.capture_retry_grace_minutes)

    async with database.get_db_context() as db:
        bookings = await booking_store.list_pending_captures(
            db, completed_before=cutoff, limit=settings.capture_retry_batch_size
        )
        booking_ids = [booking.id for booking in bookings]

    summary = {"checked": len(booking_ids), "captured": 0, "failed": 0}

    for booking_id in booking_ids:
        try:
            async with database.get_db_context() as db:
                outcome = await payment_capture_coordinator.retry_capture(db, booking_id)
        except AppException as e:
            # Booking moved on since it was listed
            logger.info(f"Skipping capture retry for booking {booking_id}: {e.detail}")
            continue
        except Exception:
            logger.exception(f"Capture retry failed for booking {booking_id}")
            summary["failed"] += 1
            continue

        if outcome.captured:
            summary["captured"] += 1
        else:
            summary["failed"] += 1

    logger.info(
        f"Capture retry sweep: checked={summary['checked']} "
        f"captured={summary['captured']} failed={summary['failed']}"
    )
    return summary
