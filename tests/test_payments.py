from ticketmate.booking import MAX_TICKETS_PER_BOOKING
from ticketmate.models import PaymentStatus


def _initialize(client, headers, event, tickets=None, **overrides):
    payload = {
        "eventId": event.event_id,
        "tickets": tickets or [{"type": "regular", "quantity": 2}],
        "customerEmail": "ama@example.com",
        "customerName": "Ama Mensah",
        "customerPhone": "024 123 4567",
        "paymentMethod": "mobile_money",
    }
    payload.update(overrides)
    return client.post("/api/payments/initialize", json=payload, headers=headers)


def _paid_booking(client, headers, event):
    r = _initialize(client, headers, event)
    assert r.status_code == 200
    return r.get_json()["data"]


def test_initialize_paid_booking(client, auth_headers, event, gateway, storage, user):
    r = _initialize(client, auth_headers, event)
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "Payment initialized successfully"

    data = body["data"]
    assert data["userId"] == user.user_id
    assert data["totalAmount"] == 1900
    assert data["totalTickets"] == 2
    assert data["reference"].startswith("TM_")
    assert data["authorizationUrl"] == f"https://checkout.paystack.com/{data['reference']}"
    assert data["accessCode"] == f"ac_{data['reference']}"
    assert data["event"]["title"] == event.title

    name, reference, amount_minor, metadata = gateway.calls[0]
    assert (name, reference, amount_minor) == ("initialize", data["reference"], 190000)
    assert metadata["bookingId"] == data["bookingId"]
    assert metadata["tickets"] == [{"type": "regular", "quantity": 2, "price": 950, "includesFriends": False}]

    booking = storage.bookings.get(data["bookingId"])
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.paystack_reference == data["reference"]
    assert booking.ticket_numbers == []


def test_initialize_free_booking_skips_gateway(client, auth_headers, free_event, gateway, storage):
    r = _initialize(client, auth_headers, free_event, tickets=[{"type": "Regular", "quantity": 3}])
    assert r.status_code == 200
    body = r.get_json()
    assert body["message"] == "Free tickets booked successfully"
    assert body["data"]["totalAmount"] == 0
    assert len(body["data"]["tickets"]) == 3
    assert body["data"]["qrCode"]
    assert gateway.calls == []

    booking = storage.bookings.get(body["data"]["bookingId"])
    assert booking.payment_status == PaymentStatus.SUCCESS
    assert booking.payment_method == "free"
    assert booking.ticket_numbers == body["data"]["tickets"]


def test_initialize_validation(client, auth_headers, event):
    r = _initialize(client, auth_headers, event, tickets=[{"type": "Backstage", "quantity": 1}])
    assert r.status_code == 400
    assert "Available types: Regular, VIP" in r.get_json()["message"]

    r = _initialize(client, auth_headers, event, tickets=[{"type": "VIP", "quantity": 0}])
    assert r.status_code == 400
    assert r.get_json()["message"] == "Each ticket must have type and valid quantity"

    r = _initialize(client, auth_headers, event, paymentMethod="cash")
    assert r.status_code == 400

    r = _initialize(client, auth_headers, event, customerEmail="not-an-email")
    assert r.status_code == 400

    r = _initialize(client, auth_headers, event, customerName="")
    assert r.status_code == 400
    assert r.get_json()["message"] == "Customer email and name are required"

    r = _initialize(client, auth_headers, event, eventId="missing")
    assert r.status_code == 404


def test_initialize_requires_auth(client, event):
    r = _initialize(client, {}, event)
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_initialize_gateway_rejection_marks_failed(client, auth_headers, event, gateway, storage, user):
    gateway.initialize_response = {"status": False, "message": "Invalid key"}
    r = _initialize(client, auth_headers, event)
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid key"

    [booking] = storage.bookings.list_for_user(user.user_id)
    assert booking.payment_status == PaymentStatus.FAILED


def test_verify_is_idempotent(client, auth_headers, event, gateway):
    data = _paid_booking(client, auth_headers, event)

    r1 = client.get(f"/api/payments/verify/{data['reference']}")
    assert r1.status_code == 200
    first = r1.get_json()
    assert first["message"] == "Payment verified successfully"
    assert len(first["data"]["tickets"]) == 2
    assert first["data"]["booking"]["paymentStatus"] == "success"

    r2 = client.get(f"/api/payments/verify/{data['reference']}")
    second = r2.get_json()
    assert second["message"] == "Payment already verified"
    assert second["data"]["tickets"] == first["data"]["tickets"]
    assert second["data"]["qrCode"] == first["data"]["qrCode"]
    assert gateway.count("verify") == 1


def test_verify_unknown_reference(client):
    r = client.get("/api/payments/verify/TM_0_NOPE")
    assert r.status_code == 404
    assert r.get_json()["message"] == "Booking not found"


def test_verify_declined_then_paid(client, auth_headers, event, gateway, storage):
    data = _paid_booking(client, auth_headers, event)

    gateway.verify_status = "failed"
    r = client.get(f"/api/payments/verify/{data['reference']}")
    assert r.status_code == 400
    assert r.get_json()["message"] == "Declined"
    booking = storage.bookings.get(data["bookingId"])
    assert booking.payment_status == PaymentStatus.FAILED
    assert booking.ticket_numbers == []

    # The customer completed payment later
    gateway.verify_status = "success"
    r = client.get(f"/api/payments/verify/{data['reference']}")
    assert r.status_code == 200
    assert storage.bookings.get(data["bookingId"]).payment_status == PaymentStatus.SUCCESS


def test_verify_racing_webhook_yields_one_generation(client, auth_headers, event, gateway,
                                                     booking_service, signed_webhook, storage):
    data = _paid_booking(client, auth_headers, event)
    settled_by_webhook = []

    def webhook_lands_first(reference):
        gateway.on_verify = None
        body, headers = signed_webhook(reference)
        settled_by_webhook.append(
            booking_service.handle_webhook(body, headers["x-paystack-signature"])
        )

    gateway.on_verify = webhook_lands_first
    r = client.get(f"/api/payments/verify/{data['reference']}")
    assert r.status_code == 200

    winner = settled_by_webhook[0]
    assert r.get_json()["data"]["tickets"] == winner.ticket_numbers
    assert r.get_json()["data"]["qrCode"] == winner.qr_code

    stored = storage.bookings.get(data["bookingId"])
    assert stored.ticket_numbers == winner.ticket_numbers
    assert len(stored.ticket_numbers) == stored.total_tickets


def test_webhook_settles_pending_booking(client, auth_headers, event, signed_webhook, storage):
    data = _paid_booking(client, auth_headers, event)
    body, headers = signed_webhook(data["reference"])

    r = client.post("/api/payments/webhook", data=body, headers=headers)
    assert r.status_code == 200
    assert r.get_json() == {"success": True}

    booking = storage.bookings.get(data["bookingId"])
    assert booking.payment_status == PaymentStatus.SUCCESS
    assert len(booking.ticket_numbers) == 2

    # A redelivery changes nothing
    client.post("/api/payments/webhook", data=body, headers=headers)
    assert storage.bookings.get(data["bookingId"]).ticket_numbers == booking.ticket_numbers


def test_webhook_with_bad_signature_mutates_nothing(client, auth_headers, event, signed_webhook, storage):
    data = _paid_booking(client, auth_headers, event)
    body, headers = signed_webhook(data["reference"])
    headers["x-paystack-signature"] = "0" * 128

    r = client.post("/api/payments/webhook", data=body, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid webhook signature"

    r = client.post("/api/payments/webhook", data=body, headers={"Content-Type": "application/json"})
    assert r.status_code == 400

    booking = storage.bookings.get(data["bookingId"])
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.ticket_numbers == []


def test_webhook_ignores_other_events(client, auth_headers, event, signed_webhook, storage):
    data = _paid_booking(client, auth_headers, event)
    body, headers = signed_webhook(data["reference"], event="transfer.success")

    r = client.post("/api/payments/webhook", data=body, headers=headers)
    assert r.status_code == 200
    assert storage.bookings.get(data["bookingId"]).payment_status == PaymentStatus.PENDING


def test_booking_history_and_detail(client, auth_headers, other_headers, event, free_event):
    paid = _paid_booking(client, auth_headers, event)
    free = _initialize(client, auth_headers, free_event,
                       tickets=[{"type": "Regular", "quantity": 1}]).get_json()["data"]

    r = client.get("/api/payments/bookings", headers=auth_headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["totalBookings"] == 2
    assert data["currentPage"] == 1
    assert data["totalPages"] == 1
    assert {b["id"] for b in data["bookings"]} == {paid["bookingId"], free["bookingId"]}
    assert all(isinstance(b["event"], dict) for b in data["bookings"])

    r = client.get("/api/payments/bookings?status=success&limit=1", headers=auth_headers)
    data = r.get_json()["data"]
    assert data["totalBookings"] == 1
    assert data["bookings"][0]["id"] == free["bookingId"]

    r = client.get("/api/payments/bookings?page=0", headers=auth_headers)
    assert r.status_code == 400

    r = client.get(f"/api/payments/bookings/{free['bookingId']}", headers=auth_headers)
    assert r.status_code == 200
    detail = r.get_json()["data"]
    assert detail["tickets"] == free["tickets"]
    assert detail["booking"]["event"]["title"] == free_event.title

    r = client.get(f"/api/payments/bookings/{free['bookingId']}", headers=other_headers)
    assert r.status_code == 404


def test_refund_successful_booking(client, auth_headers, admin_headers, event, gateway, storage):
    data = _paid_booking(client, auth_headers, event)
    client.get(f"/api/payments/verify/{data['reference']}")

    r = client.post(f"/api/payments/bookings/{data['bookingId']}/refund", json={}, headers=auth_headers)
    assert r.status_code == 403

    r = client.post(f"/api/payments/bookings/{data['bookingId']}/refund", json={}, headers=admin_headers)
    assert r.status_code == 200
    assert r.get_json()["data"]["paymentStatus"] == "refunded"
    assert ("refund", data["reference"], None) in gateway.calls

    booking = storage.bookings.get(data["bookingId"])
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.metadata["refund"]["refund_amount_minor"] == 190000

    # Refunded bookings cannot be verified back into success
    r = client.get(f"/api/payments/verify/{data['reference']}")
    assert r.status_code == 400


def test_refund_requires_successful_booking(client, auth_headers, admin_headers, event):
    data = _paid_booking(client, auth_headers, event)
    r = client.post(f"/api/payments/bookings/{data['bookingId']}/refund", json={}, headers=admin_headers)
    assert r.status_code == 400

    r = client.post("/api/payments/bookings/missing/refund", json={}, headers=admin_headers)
    assert r.status_code == 404


def test_initialize_caps_tickets_per_booking(client, auth_headers, event, gateway, storage, user):
    tickets = [{"type": "Regular", "quantity": MAX_TICKETS_PER_BOOKING},
               {"type": "VIP", "quantity": 1}]
    r = _initialize(client, auth_headers, event, tickets=tickets)
    assert r.status_code == 400
    assert r.get_json()["message"] == f"A booking cannot exceed {MAX_TICKETS_PER_BOOKING} tickets"
    assert gateway.calls == []
    assert storage.bookings.list_for_user(user.user_id) == []

    # A booking at the cap still settles with one ticket number per ticket
    full = [{"type": "Regular", "quantity": MAX_TICKETS_PER_BOOKING}]
    reference = _initialize(client, auth_headers, event, tickets=full).get_json()["data"]["reference"]
    r = client.get(f"/api/payments/verify/{reference}")
    assert r.status_code == 200
    assert len(r.get_json()["data"]["tickets"]) == MAX_TICKETS_PER_BOOKING
