"""Demo data for local development and manual API exploration."""

from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session

from . import repositories, schemas, services
from .exceptions import SlotConflictError
from .models import utcnow

DEMO_USERS = [
    ("Alice Example", "alice@example.com"),
    ("Bob Example", "bob@example.com"),
    ("Carol Example", "carol@example.com"),
    ("Dave Example", "dave@example.com"),
    ("Erin Example", "erin@example.com"),
]


def seed_demo_data(session: Session, users: int = 3, slots_per_user: int = 4, start: Optional[datetime] = None) -> dict:
    """Create demo users with hourly FREE slots.

    Slots start at 09:00 on the day after `start` (default: now). Users
    whose email already exists are reused, and slots that would overlap
    existing ones are skipped, so the function can be run repeatedly.
    Returns counts of created users and slots.
    """
    base = schemas.to_utc(start or utcnow()).replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=1)
    user_svc = services.UserService(session)
    slot_svc = services.TimeSlotService(session)
    user_repo = repositories.UserRepository(session)
    created_users = 0
    created_slots = 0
    skipped_slots = 0
    for name, email in DEMO_USERS[:users]:
        existing = user_repo.get_by_email(email)
        if existing:
            user_id = existing.id
        else:
            user_id = user_svc.create_user(schemas.UserIn(name=name, email=email)).id
            created_users += 1
        for i in range(slots_per_user):
            req = schemas.CreateTimeSlotRequest(start_time=base + timedelta(hours=i), duration_minutes=60)
            try:
                slot_svc.create_time_slot(user_id, req)
                created_slots += 1
            except SlotConflictError:
                skipped_slots += 1
    return {"users": created_users, "slots": created_slots, "skipped_slots": skipped_slots}
