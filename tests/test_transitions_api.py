from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.core.background_tasks import background_tasks
from app.domain.booking_state import BookingStatus
from app.services.booking_store import booking_store
from tests.helpers import auth_headers, notifications_for, reload_booking


def status_url(booking_id) -> str:
    return f"/api/v1/bookings/{booking_id}/status"


async def advance(client, booking_id, user, next_status):
    return await client.patch(
        status_url(booking_id), json={"nextStatus": next_status}, headers=auth_headers(user)
    )


# --- Happy path ---


async def test_pro_walks_booking_to_paid(client, session_maker, gateway, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    for action, expected in [
        ("ACCEPTED", "accepted"),
        ("ON_THE_WAY", "en_route"),
        ("IN_PROGRESS", "in_progress"),
    ]:
        response = await advance(client, booking.id, pro_user, action)
        assert response.status_code == 200, response.json()
        assert response.json()["status"] == expected

    response = await advance(client, booking.id, pro_user, "COMPLETED")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert data["payment_status"] == "PAID"
    assert data["status_updated_by"] == str(pro_user.id)
    for field in ("accepted_at", "en_route_at", "started_at", "completed_at", "paid_at"):
        assert data[field] is not None

    statuses = [entry["status"] for entry in data["status_history"]]
    assert statuses == [
        "requested",
        "accepted",
        "en_route",
        "in_progress",
        "completed_pending_payment",
        "paid",
    ]
    times = [entry["at"] for entry in data["status_history"]]
    assert times == sorted(times)

    stored = await reload_booking(session_maker, booking.id)
    assert stored.status == "paid"
    assert stored.status_history[-1]["status"] == stored.status


async def test_projection_shape(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, pro_user, "ACCEPTED")

    assert set(response.json()) == {
        "id",
        "status",
        "status_history",
        "accepted_at",
        "en_route_at",
        "started_at",
        "completed_at",
        "paid_at",
        "payment_status",
        "status_updated_at",
        "status_updated_by",
    }


async def test_legacy_pending_booking_can_be_accepted(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, "pending")

    response = await advance(client, booking.id, pro_user, "ACCEPTED")

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"


async def test_accept_notifies_customer(client, session_maker, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, pro_user, "ACCEPTED")
    assert response.status_code == 200
    await background_tasks.drain()

    notifications = await notifications_for(session_maker, customer.id)
    assert len(notifications) == 1
    assert notifications[0].title == "Booking accepted"
    assert notifications[0].notification_type == "booking_accepted"
    assert notifications[0].deep_link == f"/bookings/{booking.id}"
    assert await notifications_for(session_maker, pro_user.id) == []


# --- Conflicts ---


async def test_skipping_a_step_is_rejected_without_mutation(client, session_maker, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.ACCEPTED)
    before = await reload_booking(session_maker, booking.id)

    response = await advance(client, booking.id, pro_user, "IN_PROGRESS")

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "invalid_transition"
    assert body["currentStatus"] == "accepted"
    assert body["allowedNextStatus"] == "ON_THE_WAY"

    after = await reload_booking(session_maker, booking.id)
    assert after.status == "accepted"
    assert after.status_history == before.status_history
    assert after.started_at is None


async def test_replayed_request_is_rejected_without_duplicate_entry(client, session_maker, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    first = await advance(client, booking.id, pro_user, "ACCEPTED")
    second = await advance(client, booking.id, pro_user, "ACCEPTED")

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["currentStatus"] == "accepted"
    assert second.json()["allowedNextStatus"] == "ON_THE_WAY"

    stored = await reload_booking(session_maker, booking.id)
    assert [entry["status"] for entry in stored.status_history] == ["requested", "accepted"]


@pytest.mark.parametrize("action", ["ACCEPTED", "ON_THE_WAY", "IN_PROGRESS", "COMPLETED"])
async def test_terminal_booking_rejects_every_action(client, parties, make_booking, action):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.CANCELLED)

    response = await advance(client, booking.id, pro_user, action)

    assert response.status_code == 409
    assert response.json()["currentStatus"] == "cancelled"
    assert response.json()["allowedNextStatus"] is None


async def test_completed_booking_reports_no_requestable_next_step(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.COMPLETED_PENDING_PAYMENT)

    response = await advance(client, booking.id, pro_user, "COMPLETED")

    assert response.status_code == 409
    assert response.json()["currentStatus"] == "completed_pending_payment"
    assert response.json()["allowedNextStatus"] is None


# --- Authorization ---


@pytest.mark.parametrize("action", ["ACCEPTED", "ON_THE_WAY", "IN_PROGRESS", "COMPLETED"])
async def test_other_pro_is_forbidden_for_every_action(
    client, session_maker, parties, make_pro, make_booking, action
):
    customer, _, pro = parties
    other_user, _ = await make_pro()
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, other_user, action)

    assert response.status_code == 403
    stored = await reload_booking(session_maker, booking.id)
    assert stored.status == "requested"
    assert len(stored.status_history) == 1


async def test_customer_cannot_advance_their_booking(client, parties, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, customer, "ACCEPTED")

    assert response.status_code == 403
    assert response.json()["code"] == "not_authorized"


async def test_pro_user_without_profile_is_forbidden(client, parties, make_user, make_booking):
    customer, _, pro = parties
    orphan = await make_user(role="pro")
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, orphan, "ACCEPTED")

    assert response.status_code == 403
    assert response.json()["detail"] == "Pro profile not found"


async def test_missing_token_is_unauthenticated(client, parties, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro)

    response = await client.patch(status_url(booking.id), json={"nextStatus": "ACCEPTED"})

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_garbage_token_is_unauthenticated(client, parties, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro)

    response = await client.patch(
        status_url(booking.id),
        json={"nextStatus": "ACCEPTED"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


async def test_deactivated_pro_is_unauthenticated(client, parties, make_user, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro)
    inactive = await make_user(role="pro", is_active=False)
    response = await advance(client, booking.id, inactive, "ACCEPTED")

    assert response.status_code == 401


# --- Malformed requests ---


async def test_unknown_next_status_is_bad_request(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    response = await advance(client, booking.id, pro_user, "TELEPORTED")

    assert response.status_code == 400
    assert "ACCEPTED" in response.json()["detail"]


async def test_paid_cannot_be_requested(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.COMPLETED_PENDING_PAYMENT)

    response = await advance(client, booking.id, pro_user, "PAID")

    assert response.status_code == 400


async def test_missing_body_is_bad_request(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro)

    response = await client.patch(status_url(booking.id), json={}, headers=auth_headers(pro_user))

    assert response.status_code == 400


async def test_malformed_booking_id_is_bad_request(client, parties):
    _, pro_user, _ = parties

    response = await client.patch(
        status_url("not-a-uuid"), json={"nextStatus": "ACCEPTED"}, headers=auth_headers(pro_user)
    )

    assert response.status_code == 400


async def test_unknown_booking_is_not_found(client, parties):
    _, pro_user, _ = parties

    response = await advance(client, uuid4(), pro_user, "ACCEPTED")

    assert response.status_code == 404


# --- Store failures ---


async def test_failed_status_write_is_internal_error_without_mutation(
    client, session_maker, gateway, mocker, parties, make_booking
):
    mocker.patch.object(
        booking_store,
        "conditional_update",
        side_effect=OperationalError("UPDATE bookings", {}, Exception("connection lost")),
    )
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.IN_PROGRESS)
    before = await reload_booking(session_maker, booking.id)

    response = await advance(client, booking.id, pro_user, "COMPLETED")
    await background_tasks.drain()

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to update booking status"

    after = await reload_booking(session_maker, booking.id)
    assert after.status == "in_progress"
    assert after.status_history == before.status_history
    assert after.completed_at is None
    gateway.capture_payment.assert_not_awaited()
    assert await notifications_for(session_maker, customer.id) == []
    assert await notifications_for(session_maker, pro_user.id) == []


# --- Status reads ---


async def test_customer_and_pro_can_read_status(client, parties, make_booking):
    customer, pro_user, pro = parties
    booking = await make_booking(customer, pro, BookingStatus.EN_ROUTE)

    for user in (customer, pro_user):
        response = await client.get(status_url(booking.id), headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["status"] == "en_route"


async def test_legacy_status_is_read_under_canonical_name(client, parties, make_booking):
    customer, _, pro = parties
    booking = await make_booking(customer, pro, "on_the_way")

    response = await client.get(status_url(booking.id), headers=auth_headers(customer))

    assert response.json()["status"] == "en_route"
    assert response.json()["status_history"][-1]["status"] == "en_route"


async def test_stranger_cannot_read_status(client, parties, make_user, make_booking):
    customer, _, pro = parties
    stranger = await make_user()
    booking = await make_booking(customer, pro)

    response = await client.get(status_url(booking.id), headers=auth_headers(stranger))

    assert response.status_code == 403


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
