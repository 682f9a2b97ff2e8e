import asyncio
import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from app import database
from app.core.background_tasks import BackgroundTaskRunner, background_tasks
from app.domain.booking_state import BookingStatus
from app.services.notification_service import NotificationService, notification_service
from tests.helpers import notifications_for


def test_only_mapped_states_notify(mocker):
    runner = mocker.Mock(spec=BackgroundTaskRunner)
    service = NotificationService(runner=runner)
    # Coroutines handed to the mock runner are never awaited
    mocker.patch.object(service, "notify", new=mocker.Mock())
    booking_id, customer_id = uuid4(), uuid4()

    assert service.dispatch_status_change(booking_id, customer_id, BookingStatus.REQUESTED) is False
    assert service.dispatch_status_change(booking_id, customer_id, BookingStatus.PAID) is False
    assert service.dispatch_status_change(booking_id, customer_id, BookingStatus.EN_ROUTE) is True
    assert runner.submit.call_count == 1


async def test_status_change_creates_customer_notification(session_maker, parties, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.EN_ROUTE)

    notification_service.dispatch_status_change(booking.id, customer.id, BookingStatus.EN_ROUTE)
    await background_tasks.drain()

    notes = await notifications_for(session_maker, customer.id)
    assert len(notes) == 1
    assert notes[0].title == "Pro is on the way"
    assert notes[0].booking_id == booking.id


async def test_payment_notifications_address_pro_user(session_maker, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.PAID, payment_status="PAID")

    notification_service.dispatch_payment_captured(booking.id, customer.id, pro.id)
    await background_tasks.drain()

    assert len(await notifications_for(session_maker, customer.id)) == 1
    pro_notes = await notifications_for(session_maker, pro_user.id)
    assert len(pro_notes) == 1
    assert pro_notes[0].notification_type == "payment_captured"


async def test_notify_never_raises(monkeypatch, caplog):
    @asynccontextmanager
    async def broken_db_context():
        raise RuntimeError("database down")
        yield

    monkeypatch.setattr(database, "get_db_context", broken_db_context)

    with caplog.at_level(logging.ERROR):
        await notification_service.notify(uuid4(), "booking_status", "Job started", None, None, None)

    assert "Failed to create notification" in caplog.text


async def test_notify_pro_without_profile_is_skipped(session_maker, caplog):
    with caplog.at_level(logging.WARNING):
        await notification_service.notify_pro(uuid4(), "payment_captured", "Payment completed", None, None, None)

    assert "notification skipped" in caplog.text


async def test_runner_logs_failures_and_keeps_going(caplog):
    runner = BackgroundTaskRunner()
    done = []

    async def fails():
        raise RuntimeError("boom")

    async def succeeds():
        done.append(True)

    with caplog.at_level(logging.ERROR):
        runner.submit(fails(), name="fails")
        runner.submit(succeeds(), name="succeeds")
        await runner.drain()

    assert done == [True]
    assert runner.pending == 0
    assert "Background task failed: fails" in caplog.text


async def test_runner_cancels_stragglers_on_drain_timeout():
    runner = BackgroundTaskRunner()
    task = runner.submit(asyncio.sleep(10), name="slow")

    await runner.drain(timeout=0.01)

    assert task.cancelled()
    assert runner.pending == 0
