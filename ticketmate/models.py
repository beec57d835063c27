from dataclasses import dataclass, asdict, field
from datetime import datetime, UTC
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional
import re
import uuid

EVENT_CATEGORIES = ["Music", "Sports", "Arts", "Education", "Food", "Tech"]
EVENT_STATUSES = ["draft", "published", "cancelled"]
USER_ROLES = ["user", "admin"]
GENDERS = ["male", "female", "other", "prefer-not-to-say"]
OTP_PURPOSES = ["signup", "login", "password_reset"]
PAYMENT_METHODS = ["card", "bank", "mobile_money", "bank_transfer", "ussd", "qr", "eft"]

PREFERENCE_CATEGORIES = [
    "Dance", "Tech Conference", "Music", "International Events", "Festivals", "Games",
    "Sports", "Education", "Art", "House Party", "Cooking", "Exhibition", "Modelling",
    "Gospel", "Car Showroom and Drifting",
]
AGE_RANGES = ["10-15", "16-20", "21-25", "25-30", "30-35", "36 and Above"]
PERSONALITIES = ["Extrovert", "Introvert", "Ambivert"]
PREFERENCE_ROLES = ["Event Creator", "Event Attendee"]


def _now() -> str:
    return datetime.now(UTC).isoformat()


def to_json_number(minor_units: int):
    """Render minor units as a major-unit JSON number (1900 or 12.5)."""
    major = Decimal(minor_units) / Decimal(100)
    return int(major) if major % 1 == 0 else float(major)


# ---------- Money ----------
@dataclass(frozen=True)
class Money:
    currency: str
    minor_units: int

    @property
    def is_free(self) -> bool:
        return self.minor_units == 0


_NON_NUMERIC = re.compile(r"[^\d.]")
_LEADING_DECIMAL = re.compile(r"\d*\.?\d*")


def parse_price(display: Optional[str], currency: str = "GHS") -> Money:
    """
    Turn a display price such as "GH₵1,500" or "Free" into Money.

    Anything mentioning "free" is zero. Otherwise every character that is not
    a digit or a dot is dropped and the leading decimal of what remains is
    used, so "GH₵1,500" is 1500 and "1.2.3" is 1.2. Locale separators are not
    understood: "1.500,00" becomes 1.5.
    """
    if not display or "free" in display.lower():
        return Money(currency, 0)
    numeric = _NON_NUMERIC.sub("", display)
    match = _LEADING_DECIMAL.match(numeric).group(0)
    if not any(ch.isdigit() for ch in match):
        return Money(currency, 0)
    minor = (Decimal(match) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return Money(currency, int(minor))


# ---------- Users ----------
@dataclass
class User:
    user_id: str
    first_name: str
    last_name: str
    username: str
    email: str
    password_hash: str
    role: str                 # 'user' | 'admin'
    created_at: str
    updated_at: str
    phone_number: Optional[str] = None
    gender: Optional[str] = None
    profile_image: Optional[str] = None
    location: Optional[str] = None
    preferences: dict = field(default_factory=dict)
    is_online: bool = False
    is_verified: bool = False
    # Only the sha256 of the reset token is kept
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[int] = None

    @staticmethod
    def new(first_name: str, last_name: str, username: str, email: str,
            password_hash: str, phone_number: Optional[str] = None,
            gender: Optional[str] = None, role: str = "user") -> "User":
        now = _now()
        return User(
            user_id=str(uuid.uuid4()),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            username=username.strip(),
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
            phone_number=phone_number.strip() if phone_number else None,
            gender=gender,
        )

    @staticmethod
    def from_item(item: dict) -> "User":
        return User(**{k: v for k, v in item.items() if k in User.__dataclass_fields__})

    def to_item(self) -> dict:
        return asdict(self)

    def to_public(self) -> dict:
        # What you return to clients
        return {
            "id": self.user_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "email": self.email,
            "phoneNumber": self.phone_number,
            "gender": self.gender,
            "profileImage": self.profile_image,
            "location": self.location,
            "preferences": self.preferences,
            "isOnline": self.is_online,
            "isVerified": self.is_verified,
            "role": self.role,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# ---------- Events ----------
@dataclass
class TicketType:
    type: str
    price: str                # display string, e.g. "GH₵950" or "Free"
    money: Money
    description: Optional[str] = None
    available: bool = True

    @staticmethod
    def from_dict(data: dict, currency: str = "GHS") -> "TicketType":
        price = str(data.get("price") or "")
        if data.get("price_minor") is not None:
            money = Money(data.get("currency") or currency, int(data["price_minor"]))
        else:
            money = parse_price(price, currency)
        return TicketType(
            type=str(data.get("type") or "").strip(),
            price=price,
            money=money,
            description=data.get("description"),
            available=bool(data.get("available", True)),
        )

    def to_item(self) -> dict:
        return {
            "type": self.type,
            "price": self.price,
            "price_minor": self.money.minor_units,
            "currency": self.money.currency,
            "description": self.description,
            "available": self.available,
        }

    def to_public(self) -> dict:
        return {
            "type": self.type,
            "price": self.price,
            "amount": to_json_number(self.money.minor_units),
            "currency": self.money.currency,
            "description": self.description,
            "available": self.available,
        }


@dataclass
class Event:
    event_id: str
    title: str
    date: str                 # free-form display string, e.g. "June 27th"
    time: str
    location: str
    venue: str
    price: str
    image: str
    category: str
    description: str
    created_by: str           # user_id of the creator
    created_at: str
    updated_at: str
    status: str = "published"
    rating: str = "4.0"
    attendees: str = "0+"
    is_popular: bool = False
    attendee_images: List[str] = field(default_factory=list)
    tickets: List[TicketType] = field(default_factory=list)
    organizer: dict = field(default_factory=dict)
    coordinates: Optional[dict] = None

    @staticmethod
    def from_item(item: dict) -> "Event":
        data = {k: v for k, v in item.items() if k in Event.__dataclass_fields__}
        data["tickets"] = [TicketType.from_dict(t) for t in item.get("tickets") or []]
        return Event(**data)

    def to_item(self) -> dict:
        item = asdict(self)
        item["tickets"] = [t.to_item() for t in self.tickets]
        return item

    def summary(self) -> dict:
        return {
            "id": self.event_id,
            "title": self.title,
            "date": self.date,
            "venue": self.venue,
            "location": self.location,
            "image": self.image,
        }

    def to_public(self) -> dict:
        return {
            "id": self.event_id,
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "location": self.location,
            "venue": self.venue,
            "price": self.price,
            "rating": self.rating,
            "attendees": self.attendees,
            "image": self.image,
            "category": self.category,
            "isPopular": self.is_popular,
            "attendeeImages": self.attendee_images,
            "tickets": [t.to_public() for t in self.tickets],
            "description": self.description,
            "organizer": self.organizer,
            "coordinates": self.coordinates,
            "createdBy": self.created_by,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# ---------- OTP ----------
@dataclass
class OtpRecord:
    otp_key: str              # "<phone>#<purpose>", one live code per pair
    phone_number: str
    code: str
    purpose: str
    created_at: str
    expires_at: int           # epoch seconds, DynamoDB TTL attribute
    verified: bool = False
    attempts: int = 0

    @staticmethod
    def key_for(phone_number: str, purpose: str) -> str:
        return f"{phone_number}#{purpose}"

    @staticmethod
    def new(phone_number: str, code: str, purpose: str, ttl_seconds: int) -> "OtpRecord":
        now = datetime.now(UTC)
        return OtpRecord(
            otp_key=OtpRecord.key_for(phone_number, purpose),
            phone_number=phone_number,
            code=code,
            purpose=purpose,
            created_at=now.isoformat(),
            expires_at=int(now.timestamp()) + ttl_seconds,
        )

    @staticmethod
    def from_item(item: dict) -> "OtpRecord":
        return OtpRecord(**{k: v for k, v in item.items() if k in OtpRecord.__dataclass_fields__})

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = datetime.now(UTC).timestamp() if now is None else now
        return now >= self.expires_at

    def to_item(self) -> dict:
        return asdict(self)


# ---------- Bookings ----------
class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass
class TicketLine:
    type: str                 # case-folded requested type name
    quantity: int
    unit_price_minor: int
    includes_friends: bool = False

    @property
    def line_total_minor(self) -> int:
        return self.unit_price_minor * self.quantity

    @staticmethod
    def from_dict(data: dict) -> "TicketLine":
        return TicketLine(
            type=data["type"],
            quantity=int(data["quantity"]),
            unit_price_minor=int(data["unit_price_minor"]),
            includes_friends=bool(data.get("includes_friends", False)),
        )

    def to_public(self) -> dict:
        return {
            "type": self.type,
            "quantity": self.quantity,
            "price": to_json_number(self.unit_price_minor),
            "includesFriends": self.includes_friends,
        }


@dataclass
class Booking:
    booking_id: str
    user_id: str
    event_id: str
    tickets: List[TicketLine]
    total_amount_minor: int
    total_tickets: int
    currency: str
    payment_reference: str
    payment_method: str
    customer_email: str
    customer_name: str
    booking_date: str
    created_at: str
    updated_at: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    customer_phone: Optional[str] = None
    paystack_reference: Optional[str] = None
    payment_date: Optional[str] = None
    qr_code: Optional[str] = None
    ticket_numbers: List[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @staticmethod
    def new(user_id: str, event_id: str, tickets: List[TicketLine], currency: str,
            payment_reference: str, payment_method: str, customer_email: str,
            customer_name: str, customer_phone: Optional[str] = None) -> "Booking":
        now = _now()
        return Booking(
            booking_id=str(uuid.uuid4()),
            user_id=user_id,
            event_id=event_id,
            tickets=tickets,
            total_amount_minor=sum(t.line_total_minor for t in tickets),
            total_tickets=sum(t.quantity for t in tickets),
            currency=currency,
            payment_reference=payment_reference,
            payment_method=payment_method,
            customer_email=customer_email,
            customer_name=customer_name,
            customer_phone=customer_phone,
            booking_date=now,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def from_item(item: dict) -> "Booking":
        data = {k: v for k, v in item.items() if k in Booking.__dataclass_fields__}
        data["tickets"] = [TicketLine.from_dict(t) for t in item.get("tickets") or []]
        data["payment_status"] = PaymentStatus(item.get("payment_status", "pending"))
        data["ticket_numbers"] = list(item.get("ticket_numbers") or [])
        return Booking(**data)

    def to_item(self) -> dict:
        item = asdict(self)
        item["payment_status"] = self.payment_status.value
        return item

    def to_public(self, event: Optional[Event] = None) -> dict:
        return {
            "id": self.booking_id,
            "user": self.user_id,
            "event": event.summary() if event else self.event_id,
            "tickets": [t.to_public() for t in self.tickets],
            "totalAmount": to_json_number(self.total_amount_minor),
            "totalTickets": self.total_tickets,
            "currency": self.currency,
            "paymentReference": self.payment_reference,
            "paystackReference": self.paystack_reference,
            "paymentStatus": self.payment_status.value,
            "paymentMethod": self.payment_method,
            "customerEmail": self.customer_email,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "bookingDate": self.booking_date,
            "paymentDate": self.payment_date,
            "ticketNumbers": self.ticket_numbers,
            "qrCode": self.qr_code,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
