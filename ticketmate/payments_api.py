from flask import Blueprint, g, request

from .app_logger import get_logger
from .auth import require_admin, require_auth
from .errors import InvalidRequest
from .extensions import get_booking_service
from .models import PAYMENT_METHODS, Booking, Event, PaymentStatus
from .responses import success
from .validation import Validator, is_number, json_body

logger = get_logger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api/payments")

SIGNATURE_HEADER = "x-paystack-signature"
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _verified_payload(booking: Booking, event=None) -> dict:
    return {
        "booking": booking.to_public(event),
        "tickets": booking.ticket_numbers,
        "qrCode": booking.qr_code,
    }


def _positive_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidRequest(f"{name} must be a positive integer")
    if value < 1:
        raise InvalidRequest(f"{name} must be a positive integer")
    return value


# -------------------------
# API: Initialize payment (books the tickets)
# POST /api/payments/initialize
#   {eventId, tickets: [{type, quantity, includesFriends?}], customerEmail,
#    customerName, customerPhone?, paymentMethod?}
# -------------------------
@bp.route("/initialize", methods=["POST"])
@require_auth
def initialize_payment():
    data = json_body()
    if not data.get("eventId") or not isinstance(data.get("tickets"), list) or not data["tickets"]:
        raise InvalidRequest("Event ID and tickets array are required")
    if not data.get("customerEmail") or not data.get("customerName"):
        raise InvalidRequest("Customer email and name are required")
    (Validator(data)
        .email("customerEmail")
        .length("customerName", 1, 100, "Customer name must be at most 100 characters")
        .phone("customerPhone")
        .one_of("paymentMethod", PAYMENT_METHODS,
                "Payment method must be one of: " + ", ".join(PAYMENT_METHODS))
        .raise_if_invalid())

    result = get_booking_service().create_booking(
        user=g.user,
        event_id=str(data["eventId"]),
        tickets=data["tickets"],
        customer_email=data["customerEmail"].strip().lower(),
        customer_name=data["customerName"].strip(),
        payment_method=data.get("paymentMethod") or "card",
        customer_phone=data.get("customerPhone"),
    )
    booking: Booking = result["booking"]
    event: Event = result["event"]

    body = {
        "userId": booking.user_id,
        "bookingId": booking.booking_id,
        "reference": booking.payment_reference,
        "totalAmount": booking.to_public()["totalAmount"],
        "totalTickets": booking.total_tickets,
        "currency": booking.currency,
        "event": {"id": event.event_id, "title": event.title, "date": event.date, "venue": event.venue},
    }
    if booking.payment_status == PaymentStatus.SUCCESS:
        body["tickets"] = booking.ticket_numbers
        body["qrCode"] = booking.qr_code
    else:
        body["paystackReference"] = booking.paystack_reference
        body["authorizationUrl"] = result.get("authorizationUrl")
        body["accessCode"] = result.get("accessCode")
    return success(body, result["message"])


# -------------------------
# API: Verify payment
# GET /api/payments/verify/<reference>
# -------------------------
@bp.route("/verify/<reference>", methods=["GET"])
def verify_payment(reference):
    if not reference.strip():
        raise InvalidRequest("Payment reference is required")
    booking, already_verified = get_booking_service().verify_payment(reference)
    message = "Payment already verified" if already_verified else "Payment verified successfully"
    return success(_verified_payload(booking), message)


# -------------------------
# API: Paystack webhook
# POST /api/payments/webhook (x-paystack-signature: HMAC-SHA512 of the raw body)
# -------------------------
@bp.route("/webhook", methods=["POST"])
def paystack_webhook():
    raw_body = request.get_data(cache=True)
    get_booking_service().handle_webhook(raw_body, request.headers.get(SIGNATURE_HEADER))
    return success()


# -------------------------
# API: Booking history and detail for the signed-in user
# GET /api/payments/bookings?page=&limit=&status=
# GET /api/payments/bookings/<bookingId>
# -------------------------
@bp.route("/bookings", methods=["GET"])
@require_auth
def booking_history():
    page = _positive_int("page", 1)
    limit = min(_positive_int("limit", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    status = request.args.get("status") or None
    if status is not None and status not in [s.value for s in PaymentStatus]:
        raise InvalidRequest("Invalid booking status")
    return success(get_booking_service().history(g.user.user_id, page, limit, status))


@bp.route("/bookings/<booking_id>", methods=["GET"])
@require_auth
def booking_detail(booking_id):
    booking, event = get_booking_service().detail(g.user.user_id, booking_id)
    payload = _verified_payload(booking)
    payload["booking"]["event"] = event.to_public() if event else booking.event_id
    return success(payload)


# -------------------------
# API: Refund (admin)
# POST /api/payments/bookings/<bookingId>/refund {amount?}
# -------------------------
@bp.route("/bookings/<booking_id>/refund", methods=["POST"])
@require_admin
def refund_booking(booking_id):
    data = json_body()
    amount = data.get("amount")
    if amount is not None and (not is_number(amount) or amount <= 0):
        raise InvalidRequest("Refund amount must be a positive number")
    booking = get_booking_service().refund(booking_id, amount)
    logger.info("Booking %s refunded by %s", booking_id, g.user.user_id)
    return success(booking.to_public(), "Refund processed successfully")
