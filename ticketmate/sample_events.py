import uuid
from datetime import datetime, UTC, timedelta
from typing import List

from werkzeug.security import generate_password_hash

from .models import EVENT_CATEGORIES, Event, TicketType, User
from .store import Storage, build_storage

ACCRA = {"latitude": 5.6037, "longitude": -0.1870}
ADMIN_EMAIL = "admin@ticketmate.com"


def _organizer(name, followers, events, avatar="https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?w=100&h=100&fit=crop"):
    return {"name": name, "avatar": avatar, "isVerified": True, "followers": followers, "events": events}


SAMPLE_EVENTS = [
    {
        "title": "Pretty Girls Love Amapiano",
        "date": "June 27th",
        "time": "1:15 PM - 4:50 AM",
        "venue": "NO.5 Bar And Restaurant",
        "price": "GH₵950",
        "rating": "4.8",
        "attendees": "4000+",
        "image": "https://images.unsplash.com/photo-1470229722913-7c0e2dbbafd3?w=400&h=300&fit=crop",
        "category": "Music",
        "is_popular": True,
        "tickets": [
            {"type": "Regular", "price": "GH₵950", "description": "Standard entry"},
            {"type": "VIP", "price": "GH₵1500", "description": "VIP access with perks"},
        ],
        "description": "Pretty Girls Love Amapiano is a music and dance event organised by the "
                       "party invasion team of Ghana. With DJ Williamo serving as the DJ and Arnold the MC.",
        "organizer": _organizer("AfroNation Events", "2.5K", "12"),
    },
    {
        "title": "Reggae Night Live",
        "date": "August 15th",
        "time": "7:00 PM - 11:30 PM",
        "venue": "Marina Mall",
        "price": "GH₵850",
        "rating": "4.6",
        "attendees": "1200+",
        "image": "https://images.unsplash.com/photo-1493225457124-a3eb161ffa5f?w=400&h=300&fit=crop",
        "category": "Music",
        "tickets": [
            {"type": "General", "price": "GH₵850", "description": "General admission"},
            {"type": "VIP", "price": "GH₵1200", "description": "VIP experience"},
        ],
        "description": "Experience the best of reggae music with live performances from top reggae artists in Ghana.",
        "organizer": _organizer("Reggae Ghana", "1.8K", "8"),
    },
    {
        "title": "Football Training Camp",
        "date": "July 25th",
        "time": "6:00 AM - 9:00 AM",
        "venue": "Accra Sports Complex",
        "price": "GH₵400",
        "rating": "4.7",
        "attendees": "150+",
        "image": "https://images.unsplash.com/photo-1571019613454-1cb2f99b2d8b?w=400&h=300&fit=crop",
        "category": "Sports",
        "is_popular": True,
        "tickets": [{"type": "Training", "price": "GH₵400", "description": "Full training session"}],
        "description": "Professional football training camp for aspiring players of all ages and skill levels.",
        "organizer": _organizer("Accra Football Academy", "900", "6"),
    },
    {
        "title": "Paint & Sip Night",
        "date": "July 12th",
        "time": "6:00 PM - 9:00 PM",
        "venue": "Artists Alliance Gallery",
        "price": "GH₵300",
        "rating": "4.5",
        "attendees": "80+",
        "image": "https://images.unsplash.com/photo-1460661419201-fd4cecdf8a8b?w=400&h=300&fit=crop",
        "category": "Arts",
        "tickets": [{"type": "Entry", "price": "GH₵300", "description": "Includes materials"}],
        "description": "Relax, paint and sip with friends while a local artist guides you through a canvas.",
        "organizer": _organizer("Canvas Accra", "1.1K", "20"),
    },
    {
        "title": "Entrepreneurship Summit",
        "date": "September 5th",
        "time": "9:00 AM - 5:00 PM",
        "venue": "Kempinski Hotel Gold Coast City",
        "price": "GH₵800",
        "rating": "4.6",
        "attendees": "600+",
        "image": "https://images.unsplash.com/photo-1540575467063-178a50c2df87?w=400&h=300&fit=crop",
        "category": "Education",
        "is_popular": True,
        "tickets": [
            {"type": "Summit", "price": "GH₵800", "description": "Full summit access"},
            {"type": "VIP", "price": "GH₵1200", "description": "VIP networking access"},
        ],
        "description": "A day of talks and workshops with founders building across West Africa.",
        "organizer": _organizer("Founders Ghana", "4.1K", "18"),
    },
    {
        "title": "Chocolate Making Class",
        "date": "August 2nd",
        "time": "10:00 AM - 1:00 PM",
        "venue": "Niche Cocoa Kitchen",
        "price": "GH₵400",
        "rating": "4.7",
        "attendees": "40+",
        "image": "https://images.unsplash.com/photo-1511381939415-e44015466834?w=400&h=300&fit=crop",
        "category": "Food",
        "tickets": [{"type": "Class", "price": "GH₵400", "description": "Hands-on chocolate making"}],
        "description": "Learn to turn Ghanaian cocoa into bars and truffles with a master chocolatier.",
        "organizer": _organizer("Cocoa Collective", "700", "9"),
    },
    {
        "title": "AI & Machine Learning Summit",
        "date": "October 10th",
        "time": "9:00 AM - 6:00 PM",
        "venue": "Accra Digital Centre",
        "price": "GH₵900",
        "rating": "4.9",
        "attendees": "1500+",
        "image": "https://images.unsplash.com/photo-1485827404703-89b55fcc595e?w=400&h=300&fit=crop",
        "category": "Tech",
        "is_popular": True,
        "tickets": [
            {"type": "Summit", "price": "GH₵900", "description": "Full summit access"},
            {"type": "VIP", "price": "GH₵1400", "description": "VIP with networking"},
        ],
        "description": "Researchers and engineers share how AI is being applied across the continent.",
        "organizer": _organizer("Tech Ghana", "6.8K", "32"),
    },
    {
        "title": "Community Code Jam",
        "date": "November 1st",
        "time": "10:00 AM - 4:00 PM",
        "venue": "Impact Hub Accra",
        "price": "Free",
        "rating": "4.3",
        "attendees": "200+",
        "image": "https://images.unsplash.com/photo-1504384308090-c894fdcc538d?w=400&h=300&fit=crop",
        "category": "Tech",
        "tickets": [{"type": "Regular", "price": "Free", "description": "Open to everyone"}],
        "description": "A free day of pair programming and lightning talks for developers of every level.",
        "organizer": _organizer("Accra Devs", "3.0K", "25"),
    },
]


def ensure_admin(storage: Storage, password: str = "Password123") -> User:
    admin = storage.users.find_by_email(ADMIN_EMAIL)
    if admin:
        return admin
    admin = User.new(
        first_name="Admin",
        last_name="User",
        username="admin",
        email=ADMIN_EMAIL,
        password_hash=generate_password_hash(password),
        role="admin",
    )
    admin.is_verified = True
    return storage.users.create(admin)


def build_sample_events(created_by: str) -> List[Event]:
    # Staggered timestamps keep "newest first" listings stable
    start = datetime.now(UTC)
    events = []
    for offset, data in enumerate(SAMPLE_EVENTS):
        stamp = (start - timedelta(minutes=offset)).isoformat()
        events.append(Event(
            event_id=str(uuid.uuid4()),
            title=data["title"],
            date=data["date"],
            time=data["time"],
            location="Accra",
            venue=data["venue"],
            price=data["price"],
            image=data["image"],
            category=data["category"],
            description=data["description"],
            created_by=created_by,
            created_at=stamp,
            updated_at=stamp,
            rating=data["rating"],
            attendees=data["attendees"],
            is_popular=data.get("is_popular", False),
            attendee_images=[
                "https://randomuser.me/api/portraits/men/32.jpg",
                "https://randomuser.me/api/portraits/women/44.jpg",
            ],
            tickets=[TicketType.from_dict(t) for t in data["tickets"]],
            organizer=data["organizer"],
            coordinates=ACCRA,
        ))
    return events


def seed_events(storage: Storage, clear: bool = True) -> List[Event]:
    admin = ensure_admin(storage)
    if clear:
        for event in storage.events.list():
            storage.events.delete(event.event_id)
    events = build_sample_events(admin.user_id)
    for event in events:
        storage.events.put(event)
    return events


def add_sample_events():
    try:
        events = seed_events(build_storage())
    except Exception as e:
        print(f"Error adding events: {str(e)}")
        print("Make sure:")
        print("1. AWS credentials are configured (run 'aws configure')")
        print("2. The tables exist (run python -m ticketmate.create_tables first)")
        print("3. You have the necessary DynamoDB permissions")
        raise

    print(f"✓ Seeded {len(events)} events")
    for category in EVENT_CATEGORIES:
        count = sum(1 for e in events if e.category == category)
        print(f"   - {category}: {count} events")


if __name__ == '__main__':
    add_sample_events()
