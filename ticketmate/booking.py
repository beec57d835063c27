"""
Booking creation and payment reconciliation.

A booking starts ``pending`` (or ``success`` straight away when every ticket
is free). It is settled by whichever of two paths gets there first: the
client calling verify, or Paystack's ``charge.success`` webhook. Settling is
one conditional write on the booking's status, so when both paths race only
one set of ticket numbers and QR payload is ever stored, and the loser hands
back the winner's.
"""
import base64
import json
import math
import secrets
import string
import time
from datetime import datetime, UTC
from typing import Dict, List, Optional

from .app_logger import get_logger
from .errors import (
    BookingNotFound, EventNotFound, InvalidRequest, InvalidSignature, PaymentFailed,
    PaymentGatewayUnavailable, TicketTypeNotFound,
)
from .models import Booking, Event, PaymentStatus, TicketLine, TicketType, User

logger = get_logger(__name__)

REFERENCE_PREFIX = "TM"
FREE_PAYMENT_METHOD = "free"
MAX_TICKETS_PER_BOOKING = 50
_BASE36 = string.digits + string.ascii_uppercase


def _random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def generate_reference(prefix: str = REFERENCE_PREFIX) -> str:
    return f"{prefix}_{_epoch_millis()}_{_random_token()}"


def match_ticket_type(ticket_types: List[TicketType], requested: str) -> Optional[TicketType]:
    """
    Find the event ticket type for a requested name.

    Tried in order: case-insensitive equality, then case-insensitive substring
    in either direction, then (only for names containing "regular") the
    event's first ticket type. The substring rule is ambiguous when names
    overlap ("VIP" vs "VIP Table"); the first listed type wins.
    """
    wanted = requested.lower()
    for ticket in ticket_types:
        if ticket.type and ticket.type.lower() == wanted:
            return ticket

    wanted_trimmed = wanted.strip()
    for ticket in ticket_types:
        if not ticket.type:
            continue
        have = ticket.type.lower().strip()
        if wanted_trimmed in have or have in wanted_trimmed:
            return ticket

    if "regular" in wanted and ticket_types:
        return ticket_types[0]
    return None


def resolve_ticket_lines(event: Event, requested: List[dict]) -> List[TicketLine]:
    if not isinstance(requested, list) or not requested:
        raise InvalidRequest("Event ID and tickets array are required")

    lines = []
    for item in requested:
        if not isinstance(item, dict):
            raise InvalidRequest("Each ticket must have type and valid quantity")
        ticket_type = item.get("type")
        quantity = item.get("quantity")
        if (not isinstance(ticket_type, str) or not ticket_type.strip()
                or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0):
            raise InvalidRequest("Each ticket must have type and valid quantity")

        matched = match_ticket_type(event.tickets, ticket_type)
        if matched is None:
            raise TicketTypeNotFound(ticket_type, [t.type for t in event.tickets])

        lines.append(TicketLine(
            type=ticket_type.lower(),
            quantity=quantity,
            unit_price_minor=matched.money.minor_units,
            includes_friends=bool(item.get("includesFriends", False)),
        ))

    # Ticket numbers and the QR payload are stored on the booking item
    if sum(line.quantity for line in lines) > MAX_TICKETS_PER_BOOKING:
        raise InvalidRequest(f"A booking cannot exceed {MAX_TICKETS_PER_BOOKING} tickets")
    return lines


def generate_ticket_numbers(event_id: str, count: int) -> List[str]:
    """
    ``<EVENT>-<ms>-<RANDOM>`` per ticket: six characters of the event id, the
    last six digits of the current epoch milliseconds and six random base36
    characters. Unique in practice, not guaranteed.
    """
    prefix = event_id[:6].upper()
    numbers = []
    for _ in range(count):
        stamp = str(_epoch_millis())[-6:]
        numbers.append(f"{prefix}-{stamp}-{_random_token()}")
    return numbers


def build_qr_code(booking: Booking, ticket_numbers: List[str]) -> str:
    payload = {
        "bookingId": booking.booking_id,
        "eventId": booking.event_id,
        "reference": booking.payment_reference,
        "tickets": booking.total_tickets,
        "ticketNumbers": ticket_numbers,
    }
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_qr_code(qr_code: str) -> dict:
    return json.loads(base64.b64decode(qr_code))


class BookingService:
    def __init__(self, storage, payment_gateway=None):
        self.storage = storage
        self.payment_gateway = payment_gateway

    def _gateway(self):
        if self.payment_gateway is None:
            raise PaymentGatewayUnavailable("Payment gateway is not configured")
        return self.payment_gateway

    def _currency(self, event: Event) -> str:
        for ticket in event.tickets:
            return ticket.money.currency
        return getattr(self.payment_gateway, "currency", "GHS")

    # ----- creation -----
    def create_booking(self, user: User, event_id: str, tickets: List[dict], customer_email: str,
                       customer_name: str, payment_method: str,
                       customer_phone: Optional[str] = None) -> Dict:
        event = self.storage.events.get(event_id)
        if event is None:
            raise EventNotFound()

        lines = resolve_ticket_lines(event, tickets)
        booking = Booking.new(
            user_id=user.user_id,
            event_id=event.event_id,
            tickets=lines,
            currency=self._currency(event),
            payment_reference=generate_reference(),
            payment_method=payment_method,
            customer_email=customer_email,
            customer_name=customer_name,
            customer_phone=customer_phone,
        )
        logger.info("Booking %s for event %s: %s tickets, %s minor units",
                    booking.booking_id, event.event_id, booking.total_tickets, booking.total_amount_minor)

        if booking.total_amount_minor == 0:
            return self._book_free(booking, event)
        return self._book_paid(booking, event)

    def _book_free(self, booking: Booking, event: Event) -> Dict:
        # Free tickets never touch the gateway
        booking.payment_method = FREE_PAYMENT_METHOD
        booking.payment_status = PaymentStatus.SUCCESS
        booking.payment_date = datetime.now(UTC).isoformat()
        booking.ticket_numbers = generate_ticket_numbers(event.event_id, booking.total_tickets)
        booking.qr_code = build_qr_code(booking, booking.ticket_numbers)
        self.storage.bookings.create(booking)
        return {
            "message": "Free tickets booked successfully",
            "booking": booking,
            "event": event,
        }

    def _book_paid(self, booking: Booking, event: Event) -> Dict:
        gateway = self._gateway()
        self.storage.bookings.create(booking)

        metadata = {
            "bookingId": booking.booking_id,
            "eventId": event.event_id,
            "eventTitle": event.title,
            "totalTickets": booking.total_tickets,
            "customerName": booking.customer_name,
            "customerPhone": booking.customer_phone or "",
            "tickets": [t.to_public() for t in booking.tickets],
        }
        # Transport failures propagate and leave the booking pending
        response = gateway.initialize_transaction(
            email=booking.customer_email,
            amount_minor=booking.total_amount_minor,
            reference=booking.payment_reference,
            metadata=metadata,
        )

        if not response.get("status"):
            self.storage.bookings.transition(booking.booking_id, PaymentStatus.PENDING, PaymentStatus.FAILED)
            raise PaymentFailed(response.get("message") or "Failed to initialize payment")

        data = response.get("data") or {}
        booking.paystack_reference = data.get("reference") or booking.payment_reference
        self.storage.bookings.set_paystack_reference(booking.booking_id, booking.paystack_reference)
        return {
            "message": "Payment initialized successfully",
            "booking": booking,
            "event": event,
            "authorizationUrl": data.get("authorization_url"),
            "accessCode": data.get("access_code"),
        }

    # ----- settlement -----
    def _settle(self, booking: Booking, from_statuses) -> Booking:
        """
        Conditionally move ``booking`` to success with fresh ticket numbers.
        If another caller settled it first, return the stored (winning) copy.
        """
        numbers = generate_ticket_numbers(booking.event_id, booking.total_tickets)
        qr_code = build_qr_code(booking, numbers)
        paid_at = datetime.now(UTC).isoformat()
        applied = self.storage.bookings.transition(
            booking.booking_id, from_statuses, PaymentStatus.SUCCESS,
            {"payment_date": paid_at, "ticket_numbers": numbers, "qr_code": qr_code},
        )
        if applied:
            booking.payment_status = PaymentStatus.SUCCESS
            booking.payment_date = paid_at
            booking.ticket_numbers = numbers
            booking.qr_code = qr_code
            return booking
        return self.storage.bookings.get(booking.booking_id)

    def verify_payment(self, reference: str):
        """
        Client-side confirmation. Returns ``(booking, already_verified)``.
        A booking marked failed is re-checked too, since the customer may
        have completed payment after an earlier verify saw it abandoned.
        """
        booking = self.storage.bookings.find_by_payment_reference(reference)
        if booking is None:
            raise BookingNotFound()
        if booking.payment_status == PaymentStatus.SUCCESS:
            return booking, True
        if booking.payment_status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
            raise PaymentFailed(f"Booking has been {booking.payment_status.value}")

        response = self._gateway().verify_transaction(booking.paystack_reference or reference)
        data = response.get("data") or {}
        if response.get("status") and data.get("status") == "success":
            settled = self._settle(booking, [PaymentStatus.PENDING, PaymentStatus.FAILED])
            return settled, False

        self.storage.bookings.transition(booking.booking_id, PaymentStatus.PENDING, PaymentStatus.FAILED)
        current = self.storage.bookings.get(booking.booking_id)
        if current is not None and current.payment_status == PaymentStatus.SUCCESS:
            # Settled by the webhook while we were asking the gateway
            return current, True
        raise PaymentFailed(data.get("gateway_response") or response.get("message")
                            or "Payment verification failed")

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[Booking]:
        """
        Gateway notification. The signature is checked before anything is
        read or written. Returns the booking this call settled, if any.
        """
        if not self._gateway().verify_webhook_signature(raw_body, signature):
            logger.warning("Rejected webhook with invalid signature")
            raise InvalidSignature()

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise InvalidRequest("Malformed webhook payload")
        if not isinstance(payload, dict) or payload.get("event") != "charge.success":
            return None

        reference = (payload.get("data") or {}).get("reference")
        if not reference:
            return None
        booking = self.storage.bookings.find_by_any_reference(reference)
        if booking is None or booking.payment_status != PaymentStatus.PENDING:
            return None

        settled = self._settle(booking, PaymentStatus.PENDING)
        logger.info("Payment confirmed via webhook: %s", reference)
        return settled

    def refund(self, booking_id: str, amount: Optional[float] = None) -> Booking:
        booking = self.storage.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound()
        if booking.payment_status != PaymentStatus.SUCCESS:
            raise InvalidRequest("Only successful bookings can be refunded")

        refund_info = {"refunded_at": datetime.now(UTC).isoformat()}
        if booking.payment_method != FREE_PAYMENT_METHOD:
            amount_minor = int(round(amount * 100)) if amount is not None else None
            response = self._gateway().refund_transaction(
                booking.paystack_reference or booking.payment_reference, amount_minor
            )
            if not response.get("status"):
                raise PaymentFailed(response.get("message") or "Failed to process refund")
            refund_info["refund_amount_minor"] = amount_minor or booking.total_amount_minor

        metadata = dict(booking.metadata)
        metadata["refund"] = refund_info
        self.storage.bookings.transition(
            booking.booking_id, PaymentStatus.SUCCESS, PaymentStatus.REFUNDED, {"metadata": metadata}
        )
        return self.storage.bookings.get(booking.booking_id)

    # ----- queries -----
    def history(self, user_id: str, page: int = 1, limit: int = 10, status: Optional[str] = None) -> Dict:
        bookings = self.storage.bookings.list_for_user(user_id, status=status)
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        total = len(bookings)
        start = (page - 1) * limit
        page_items = bookings[start:start + limit]

        events: Dict[str, Optional[Event]] = {}
        for booking in page_items:
            if booking.event_id not in events:
                events[booking.event_id] = self.storage.events.get(booking.event_id)
        return {
            "bookings": [b.to_public(events[b.event_id]) for b in page_items],
            "currentPage": page,
            "totalPages": math.ceil(total / limit) if limit else 0,
            "totalBookings": total,
        }

    def detail(self, user_id: str, booking_id: str):
        booking = self.storage.bookings.get(booking_id)
        if booking is None or booking.user_id != user_id:
            raise BookingNotFound()
        return booking, self.storage.events.get(booking.event_id)
