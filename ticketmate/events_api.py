import random
import uuid
from datetime import datetime, UTC
from typing import List, Optional

from flask import Blueprint, g

from .app_logger import get_logger
from .auth import optional_auth, require_auth
from .errors import EventNotFound, Forbidden, ValidationError
from .extensions import get_storage
from .models import EVENT_CATEGORIES, EVENT_STATUSES, Event, TicketType
from .responses import success
from .validation import Validator, json_body

logger = get_logger(__name__)

bp = Blueprint("events", __name__, url_prefix="/api/events")

JUST_FOR_YOU_SIZE = 5

# Preference categories chosen at sign-up, folded onto event categories
PREFERENCE_TO_EVENT_CATEGORY = {
    "Dance": "Music",
    "Tech Conference": "Tech",
    "International Events": "Music",
    "Festivals": "Music",
    "Games": "Sports",
    "Art": "Arts",
    "House Party": "Music",
    "Cooking": "Food",
    "Exhibition": "Arts",
    "Modelling": "Arts",
    "Gospel": "Music",
    "Car Showroom and Drifting": "Sports",
}

_REQUIRED_FIELDS = [
    ("title", "Event title is required"),
    ("date", "Event date is required"),
    ("time", "Event time is required"),
    ("location", "Event location is required"),
    ("venue", "Event venue is required"),
    ("price", "Event price is required"),
    ("image", "Event image is required"),
    ("category", "Event category is required"),
    ("description", "Event description is required"),
]


def _newest_first(events: List[Event]) -> List[Event]:
    return sorted(events, key=lambda e: e.created_at, reverse=True)


def _organizer(data) -> dict:
    data = data if isinstance(data, dict) else {}
    return {
        "name": data.get("name") or "",
        "avatar": data.get("avatar") or "",
        "isVerified": bool(data.get("isVerified", False)),
        "followers": str(data.get("followers", "0")),
        "events": str(data.get("events", "0")),
    }


def _validate_event(data: dict, partial: bool = False):
    v = Validator(data)
    if not partial:
        for name, message in _REQUIRED_FIELDS:
            v.required(name, message)
    v.one_of("category", EVENT_CATEGORIES,
             "Invalid category. Valid categories are: " + ", ".join(EVENT_CATEGORIES))
    v.one_of("status", EVENT_STATUSES, "Invalid event status")
    v.length("description", 1, 2000, "Description cannot exceed 2000 characters")

    tickets = data.get("tickets")
    if tickets is not None:
        v.check(isinstance(tickets, list), "Tickets must be an array")
        if isinstance(tickets, list):
            v.check(all(isinstance(t, dict) and t.get("type") and t.get("price") for t in tickets),
                    "Each ticket must have a type and a price")
    attendee_images = data.get("attendeeImages")
    if attendee_images is not None:
        v.check(isinstance(attendee_images, list) and all(isinstance(i, str) for i in attendee_images),
                "Attendee images must be an array of URLs")
    coordinates = data.get("coordinates")
    if coordinates is not None:
        v.check(isinstance(coordinates, dict), "Coordinates must be an object")
    v.raise_if_invalid()


def _apply(event: Event, data: dict) -> Event:
    for key in ("title", "date", "time", "location", "venue", "price", "image",
                "category", "description", "status", "rating", "attendees"):
        if key in data and data[key] is not None:
            setattr(event, key, str(data[key]).strip())
    if "isPopular" in data:
        event.is_popular = bool(data["isPopular"])
    if "attendeeImages" in data:
        event.attendee_images = [str(i) for i in data["attendeeImages"] or []]
    if "tickets" in data:
        event.tickets = [TicketType.from_dict(t) for t in data["tickets"] or []]
    if "organizer" in data:
        event.organizer = _organizer(data["organizer"])
    if "coordinates" in data:
        event.coordinates = data["coordinates"]
    return event


def _get_or_404(event_id: str) -> Event:
    event = get_storage().events.get(event_id)
    if event is None:
        raise EventNotFound()
    return event


def _check_owner(event: Event, action: str):
    if event.created_by != g.user.user_id and g.user.role != "admin":
        raise Forbidden(f"Not authorized to {action} this event")


def _events_response(events: List[Event], **extra):
    return success([e.to_public() for e in events], count=len(events), **extra)


# -------------------------
# API: Listings
# -------------------------
@bp.route("", methods=["GET"])
def list_events():
    events = get_storage().events.list(status="published")
    return _events_response(_newest_first(events))


@bp.route("/popular", methods=["GET"])
def popular_events():
    events = get_storage().events.list(status="published", popular=True)
    return _events_response(_newest_first(events))


@bp.route("/just-for-you", methods=["GET"])
@optional_auth
def just_for_you():
    """
    Up to five published events: ones matching the caller's preferred
    categories first, topped up with popular events, then with anything
    published. The pick is shuffled on every call.
    """
    storage = get_storage()
    picked: List[Event] = []
    categories = _preferred_categories(g.user.preferences if g.user else None)
    if categories:
        picked = storage.events.list(status="published", categories=categories)

    if len(picked) < JUST_FOR_YOU_SIZE:
        picked += _excluding(storage.events.list(status="published", popular=True), picked)
    if len(picked) < JUST_FOR_YOU_SIZE:
        picked += _excluding(storage.events.list(status="published"), picked)

    random.shuffle(picked)
    return _events_response(picked[:JUST_FOR_YOU_SIZE])


def _preferred_categories(preferences: Optional[dict]) -> List[str]:
    chosen = (preferences or {}).get("categories") or []
    mapped = [PREFERENCE_TO_EVENT_CATEGORY.get(c, c) for c in chosen]
    return list(dict.fromkeys(mapped))


def _excluding(events: List[Event], already: List[Event]) -> List[Event]:
    seen = {e.event_id for e in already}
    return [e for e in _newest_first(events) if e.event_id not in seen]


@bp.route("/category/<category>", methods=["GET"])
def events_by_category(category):
    if category not in EVENT_CATEGORIES:
        raise ValidationError("Invalid category. Valid categories are: " + ", ".join(EVENT_CATEGORIES))
    events = get_storage().events.list(status="published", category=category)
    return _events_response(_newest_first(events), category=category)


@bp.route("/<event_id>", methods=["GET"])
def get_event(event_id):
    return success(_get_or_404(event_id).to_public())


# -------------------------
# API: Manage events
# POST /api/events, PUT/DELETE /api/events/<id> (creator or admin)
# -------------------------
@bp.route("", methods=["POST"])
@require_auth
def create_event():
    data = json_body()
    _validate_event(data)

    now = datetime.now(UTC).isoformat()
    event = Event(
        event_id=str(uuid.uuid4()),
        title="", date="", time="", location="", venue="", price="", image="",
        category="", description="",
        created_by=g.user.user_id,
        created_at=now,
        updated_at=now,
    )
    _apply(event, data)
    get_storage().events.put(event)
    logger.info("Event %s created by %s", event.event_id, g.user.user_id)
    return success(event.to_public(), "Event created successfully", 201)


@bp.route("/<event_id>", methods=["PUT"])
@require_auth
def update_event(event_id):
    event = _get_or_404(event_id)
    _check_owner(event, "update")

    data = json_body()
    _validate_event(data, partial=True)
    _apply(event, data)
    event.updated_at = datetime.now(UTC).isoformat()
    get_storage().events.put(event)
    return success(event.to_public(), "Event updated successfully")


@bp.route("/<event_id>", methods=["DELETE"])
@require_auth
def delete_event(event_id):
    event = _get_or_404(event_id)
    _check_owner(event, "delete")
    get_storage().events.delete(event_id)
    logger.info("Event %s deleted by %s", event_id, g.user.user_id)
    return success(message="Event deleted successfully")
