import hashlib
import hmac
import json
import uuid
from datetime import datetime, UTC

import boto3
import pytest
from moto import mock_aws
from werkzeug.security import generate_password_hash

from ticketmate.app import create_app
from ticketmate.auth import make_jwt
from ticketmate.create_tables import create_tables
from ticketmate.errors import SmsDeliveryError
from ticketmate.models import Event, TicketType, User
from ticketmate.store import Storage

WEBHOOK_SECRET = "sk_test_secret"


class FakeGateway:
    """In-memory stand-in for the Paystack client."""

    currency = "GHS"

    def __init__(self):
        self.calls = []
        self.verify_status = "success"
        self.initialize_response = None
        self.refund_response = {"status": True, "message": "Refund has been queued for processing"}
        self.on_verify = None

    def initialize_transaction(self, email, amount_minor, reference, metadata, callback_url=None):
        self.calls.append(("initialize", reference, amount_minor, metadata))
        if self.initialize_response is not None:
            return self.initialize_response
        return {
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "reference": reference,
                "authorization_url": f"https://checkout.paystack.com/{reference}",
                "access_code": f"ac_{reference}",
            },
        }

    def verify_transaction(self, reference):
        self.calls.append(("verify", reference))
        if self.on_verify:
            self.on_verify(reference)
        ok = self.verify_status == "success"
        return {
            "status": True,
            "message": "Verification successful",
            "data": {
                "status": self.verify_status,
                "reference": reference,
                "gateway_response": "Successful" if ok else "Declined",
            },
        }

    def refund_transaction(self, reference, amount_minor=None):
        self.calls.append(("refund", reference, amount_minor))
        return self.refund_response

    def verify_webhook_signature(self, raw_body, signature):
        if not signature:
            return False
        return hmac.compare_digest(sign(raw_body), signature)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


class FakeSms:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_otp(self, phone_number, code, purpose="signup"):
        if self.fail:
            raise SmsDeliveryError("Hubtel is down")
        self.sent.append((phone_number, code, purpose))
        return {"success": True, "messageId": f"msg-{len(self.sent)}"}


def sign(raw_body: bytes) -> str:
    return hmac.new(WEBHOOK_SECRET.encode(), raw_body, hashlib.sha512).hexdigest()


def webhook_body(reference: str, event: str = "charge.success") -> bytes:
    return json.dumps({"event": event, "data": {"reference": reference, "status": "success"}}).encode()


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")


@pytest.fixture
def storage(aws_credentials):
    """
    Creates the four tables in an in-memory DynamoDB using moto.
    """
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="eu-west-1")
        create_tables(dynamodb, verbose=False)
        yield Storage(dynamodb)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def app(storage, gateway, sms):
    app = create_app(storage=storage, payment_gateway=gateway, sms_sender=sms,
                     settings={"TESTING": True, "JWT_SECRET": "test-secret"})
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def booking_service(app):
    return app.extensions["ticketmate"]["booking_service"]


def _make_user(storage, username, role="user", phone_number=None):
    user = User.new(
        first_name="Ama",
        last_name="Mensah",
        username=username,
        email=f"{username}@example.com",
        password_hash=generate_password_hash("Passw0rd"),
        phone_number=phone_number,
        role=role,
    )
    return storage.users.create(user)


def _auth_header(app, user):
    with app.app_context():
        return {"Authorization": f"Bearer {make_jwt(user)}"}


@pytest.fixture
def user(storage):
    return _make_user(storage, "ama")


@pytest.fixture
def other_user(storage):
    return _make_user(storage, "kofi")


@pytest.fixture
def admin(storage):
    return _make_user(storage, "admin", role="admin")


@pytest.fixture
def auth_headers(app, user):
    return _auth_header(app, user)


@pytest.fixture
def other_headers(app, other_user):
    return _auth_header(app, other_user)


@pytest.fixture
def admin_headers(app, admin):
    return _auth_header(app, admin)


def _make_event(storage, created_by, title="Pretty Girls Love Amapiano", category="Music",
                tickets=None, is_popular=False, status="published", created_at=None):
    stamp = created_at or datetime.now(UTC).isoformat()
    if tickets is None:
        tickets = [
            {"type": "Regular", "price": "GH₵950", "description": "Standard entry"},
            {"type": "VIP", "price": "GH₵1500", "description": "VIP access with perks"},
        ]
    event = Event(
        event_id=str(uuid.uuid4()),
        title=title,
        date="June 27th",
        time="1:15 PM - 4:50 AM",
        location="Accra",
        venue="NO.5 Bar And Restaurant",
        price=tickets[0]["price"] if tickets else "Free",
        image="https://example.com/event.jpg",
        category=category,
        description="Music and dance with DJ Williamo.",
        created_by=created_by,
        created_at=stamp,
        updated_at=stamp,
        status=status,
        is_popular=is_popular,
        tickets=[TicketType.from_dict(t) for t in tickets],
    )
    return storage.events.put(event)


@pytest.fixture
def event(storage, admin):
    return _make_event(storage, admin.user_id)


@pytest.fixture
def free_event(storage, admin):
    return _make_event(storage, admin.user_id, title="Community Code Jam", category="Tech",
                       tickets=[{"type": "Regular", "price": "Free"}])


@pytest.fixture
def make_event(storage):
    def factory(created_by, **kwargs):
        return _make_event(storage, created_by, **kwargs)
    return factory


@pytest.fixture
def signed_webhook():
    """Body and headers for a Paystack webhook signed with the test secret."""
    def build(reference, event="charge.success"):
        body = webhook_body(reference, event)
        return body, {"x-paystack-signature": sign(body), "Content-Type": "application/json"}
    return build
