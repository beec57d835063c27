"""
DynamoDB persistence for users, events, OTP codes and bookings.

Each repository wraps one boto3 ``Table``. Items are stored with snake_case
attribute names; ``None`` attributes are left out of the item so the sparse
secondary indexes (paystack_reference, reset_password_token, phone_number)
only contain items that actually carry the attribute.
"""
from datetime import datetime, UTC
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .app_logger import get_logger
from .config import (
    AWS_REGION, DYNAMODB_ENDPOINT_URL,
    USERS_TABLE, EVENTS_TABLE, OTPS_TABLE, BOOKINGS_TABLE,
)
from .errors import Conflict
from .models import Booking, Event, OtpRecord, PaymentStatus, User

logger = get_logger(__name__)


def to_dynamo(obj: Any) -> Any:
    """Convert floats to Decimal for DynamoDB."""
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_dynamo(i) for i in obj]
    return obj


def from_dynamo(obj: Any) -> Any:
    """Convert Decimal back to int/float for the model layer."""
    if isinstance(obj, list):
        return [from_dynamo(i) for i in obj]
    if isinstance(obj, dict):
        return {k: from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    return obj


def _item(model_item: dict) -> dict:
    return to_dynamo({k: v for k, v in model_item.items() if v is not None})


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response["Error"]["Code"] == "ConditionalCheckFailedException"


def _any_of(attribute: str, values: List[Any]):
    """``attribute = v1 OR attribute = v2 ...`` as one condition."""
    condition = None
    for value in values:
        clause = Attr(attribute).eq(value)
        condition = clause if condition is None else condition | clause
    return condition


class _Repository:
    def __init__(self, table):
        self.table = table

    def _query_index(self, index_name: str, key: str, value: Any) -> List[dict]:
        items: List[dict] = []
        kwargs = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(key).eq(value),
        }
        while True:
            response = self.table.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return [from_dynamo(i) for i in items]
            kwargs["ExclusiveStartKey"] = last_key

    def _scan(self, filter_expression=None) -> Iterator[dict]:
        kwargs: Dict[str, Any] = {}
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        while True:
            response = self.table.scan(**kwargs)
            for item in response.get("Items", []):
                yield from_dynamo(item)
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs["ExclusiveStartKey"] = last_key

    def _update(self, key: dict, values: dict, condition=None) -> bool:
        """SET every attribute in ``values`` on one item. False when ``condition`` did not hold."""
        names = {}
        attr_values = {}
        sets = []
        for i, (name, value) in enumerate(values.items()):
            names[f"#u{i}"] = name
            attr_values[f":u{i}"] = to_dynamo(value)
            sets.append(f"#u{i} = :u{i}")

        kwargs = {
            "Key": key,
            "UpdateExpression": "SET " + ", ".join(sets),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": attr_values,
        }
        if condition is not None:
            kwargs["ConditionExpression"] = condition
        try:
            self.table.update_item(**kwargs)
        except ClientError as e:
            if _is_conditional_failure(e):
                return False
            raise
        return True


class UserRepository(_Repository):
    def get(self, user_id: str) -> Optional[User]:
        item = self.table.get_item(Key={"user_id": user_id}).get("Item")
        return User.from_item(from_dynamo(item)) if item else None

    def _first(self, index_name: str, key: str, value: str) -> Optional[User]:
        items = self._query_index(index_name, key, value)
        return User.from_item(items[0]) if items else None

    def find_by_email(self, email: str) -> Optional[User]:
        return self._first("EmailIndex", "email", email.strip().lower())

    def find_by_username(self, username: str) -> Optional[User]:
        return self._first("UsernameIndex", "username", username.strip())

    def find_by_phone(self, phone_number: str) -> Optional[User]:
        return self._first("PhoneNumberIndex", "phone_number", phone_number)

    def find_by_reset_token(self, token_hash: str) -> Optional[User]:
        return self._first("ResetTokenIndex", "reset_password_token", token_hash)

    def create(self, user: User) -> User:
        try:
            self.table.put_item(
                Item=_item(user.to_item()),
                ConditionExpression=Attr("user_id").not_exists(),
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise Conflict("User already exists")
            raise
        return user

    def save(self, user: User) -> User:
        user.updated_at = datetime.now(UTC).isoformat()
        self.table.put_item(Item=_item(user.to_item()))
        return user

    def count(self) -> int:
        return sum(1 for _ in self._scan())


class EventRepository(_Repository):
    def get(self, event_id: str) -> Optional[Event]:
        item = self.table.get_item(Key={"event_id": event_id}).get("Item")
        return Event.from_item(from_dynamo(item)) if item else None

    def put(self, event: Event) -> Event:
        self.table.put_item(Item=_item(event.to_item()))
        return event

    def delete(self, event_id: str) -> None:
        self.table.delete_item(Key={"event_id": event_id})

    def list(self, status: Optional[str] = None, category: Optional[str] = None,
             popular: Optional[bool] = None, categories: Optional[List[str]] = None) -> List[Event]:
        conditions = []
        if status:
            conditions.append(Attr("status").eq(status))
        if category:
            conditions.append(Attr("category").eq(category))
        if categories:
            conditions.append(_any_of("category", categories))
        if popular is not None:
            conditions.append(Attr("is_popular").eq(popular))

        expression = None
        for condition in conditions:
            expression = condition if expression is None else expression & condition
        return [Event.from_item(i) for i in self._scan(expression)]

    def count(self) -> int:
        return sum(1 for _ in self._scan())


class OtpRepository(_Repository):
    def get_active(self, phone_number: str, purpose: str) -> Optional[OtpRecord]:
        """Unverified, unexpired code for the pair. TTL deletion lags, so expiry is checked here too."""
        key = OtpRecord.key_for(phone_number, purpose)
        item = self.table.get_item(Key={"otp_key": key}, ConsistentRead=True).get("Item")
        if not item:
            return None
        record = OtpRecord.from_item(from_dynamo(item))
        if record.verified or record.is_expired():
            return None
        return record

    def replace(self, record: OtpRecord) -> OtpRecord:
        # Keyed on phone#purpose, so this overwrites any prior code for the pair
        self.table.put_item(Item=_item(record.to_item()))
        return record

    def delete(self, phone_number: str, purpose: str) -> None:
        self.table.delete_item(Key={"otp_key": OtpRecord.key_for(phone_number, purpose)})

    def record_failed_attempt(self, record: OtpRecord) -> Optional[int]:
        """Atomically bump the attempt counter. None if the code was replaced or removed meanwhile."""
        try:
            response = self.table.update_item(
                Key={"otp_key": record.otp_key},
                UpdateExpression="ADD #attempts :one",
                ConditionExpression=Attr("code").eq(record.code),
                ExpressionAttributeNames={"#attempts": "attempts"},
                ExpressionAttributeValues={":one": 1},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return None
            raise
        return int(response["Attributes"]["attempts"])

    def mark_verified(self, record: OtpRecord) -> bool:
        return self._update(
            {"otp_key": record.otp_key},
            {"verified": True},
            condition=Attr("code").eq(record.code) & Attr("verified").eq(False),
        )


class BookingRepository(_Repository):
    def create(self, booking: Booking) -> Booking:
        self.table.put_item(
            Item=_item(booking.to_item()),
            ConditionExpression=Attr("booking_id").not_exists(),
        )
        return booking

    def get(self, booking_id: str) -> Optional[Booking]:
        item = self.table.get_item(Key={"booking_id": booking_id}, ConsistentRead=True).get("Item")
        return Booking.from_item(from_dynamo(item)) if item else None

    def find_by_payment_reference(self, reference: str) -> Optional[Booking]:
        items = self._query_index("PaymentReferenceIndex", "payment_reference", reference)
        return Booking.from_item(items[0]) if items else None

    def find_by_paystack_reference(self, reference: str) -> Optional[Booking]:
        items = self._query_index("PaystackReferenceIndex", "paystack_reference", reference)
        return Booking.from_item(items[0]) if items else None

    def find_by_any_reference(self, reference: str) -> Optional[Booking]:
        return (self.find_by_payment_reference(reference)
                or self.find_by_paystack_reference(reference))

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> List[Booking]:
        bookings = [Booking.from_item(i) for i in self._query_index("UserIdIndex", "user_id", user_id)]
        if status:
            bookings = [b for b in bookings if b.payment_status.value == status]
        return bookings

    def set_paystack_reference(self, booking_id: str, reference: str) -> None:
        self._update(
            {"booking_id": booking_id},
            {"paystack_reference": reference, "updated_at": datetime.now(UTC).isoformat()},
        )

    def transition(self, booking_id: str, from_status, to_status: PaymentStatus,
                   values: Optional[dict] = None) -> bool:
        """
        Move a booking from ``from_status`` (one status or a list) to
        ``to_status`` in one conditional write, together with ``values``.
        Returns True only for the caller whose write landed; a concurrent
        caller that lost sees False and nothing of its ``values`` is stored.
        """
        allowed = [from_status] if isinstance(from_status, PaymentStatus) else list(from_status)
        allowed_values = [s.value for s in allowed]
        changes = dict(values or {})
        changes["payment_status"] = to_status.value
        changes["updated_at"] = datetime.now(UTC).isoformat()
        condition = _any_of("payment_status", allowed_values)
        applied = self._update({"booking_id": booking_id}, changes, condition=condition)
        if applied:
            logger.info("Booking %s moved to %s", booking_id, to_status.value)
        else:
            logger.info("Booking %s not in %s, %s transition skipped",
                        booking_id, "/".join(allowed_values), to_status.value)
        return applied


class Storage:
    """All repositories over one long-lived boto3 DynamoDB resource."""

    def __init__(self, dynamodb, users_table: str = USERS_TABLE, events_table: str = EVENTS_TABLE,
                 otps_table: str = OTPS_TABLE, bookings_table: str = BOOKINGS_TABLE):
        self.dynamodb = dynamodb
        self.users = UserRepository(dynamodb.Table(users_table))
        self.events = EventRepository(dynamodb.Table(events_table))
        self.otps = OtpRepository(dynamodb.Table(otps_table))
        self.bookings = BookingRepository(dynamodb.Table(bookings_table))


def build_storage() -> Storage:
    dynamodb = boto3.resource("dynamodb", region_name=AWS_REGION, endpoint_url=DYNAMODB_ENDPOINT_URL)
    return Storage(dynamodb)
