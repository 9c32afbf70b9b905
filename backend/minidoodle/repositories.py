"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
calendars, time slots, meetings). Repositories return SQLModel objects;
`save` and `delete` commit the current unit of work, so a service can
stage several changes on the shared session and persist them with one
call.
"""

from datetime import datetime
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from . import models
from .models import SlotStatus


class _Repository:
    def __init__(self, session: Session):
        self.session = session

    def save(self, obj):
        """Persist `obj` (insert or update) and return the refreshed instance."""
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self.session.commit()


class UserRepository(_Repository):
    """CRUD operations for `User` objects."""

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def exists_by_email(self, email: str) -> bool:
        stmt = select(models.User.id).where(models.User.email == email)
        return self.session.exec(stmt).first() is not None

    def list_all(self) -> List[models.User]:
        return self.session.exec(select(models.User).order_by(models.User.id)).all()


class CalendarRepository(_Repository):
    """Lookups for the one-per-user `Calendar`."""

    def get_by_user_id(self, user_id: int) -> Optional[models.Calendar]:
        stmt = select(models.Calendar).where(models.Calendar.user_id == user_id)
        return self.session.exec(stmt).first()

    def exists_by_user_id(self, user_id: int) -> bool:
        return self.get_by_user_id(user_id) is not None


class TimeSlotRepository(_Repository):
    """Queries over `TimeSlot` rows.

    Range queries return slots fully contained in `[start, end]`, ordered
    by start time.
    """

    def get(self, slot_id: int) -> Optional[models.TimeSlot]:
        return self.session.get(models.TimeSlot, slot_id)

    def get_for_update(self, slot_id: int) -> Optional[models.TimeSlot]:
        """Fetch a slot holding a row lock until the transaction ends.

        Used when booking so two concurrent requests cannot both see the
        slot as FREE. SQLite ignores the lock clause.
        """
        stmt = select(models.TimeSlot).where(models.TimeSlot.id == slot_id).with_for_update()
        return self.session.exec(stmt).first()

    def _in_range(self, stmt, start: datetime, end: datetime):
        return stmt.where(
            models.TimeSlot.start_time >= start,
            models.TimeSlot.end_time <= end,
        ).order_by(models.TimeSlot.start_time)

    def list_by_calendar_in_range(self, calendar_id: int, start: datetime, end: datetime) -> List[models.TimeSlot]:
        stmt = select(models.TimeSlot).where(models.TimeSlot.calendar_id == calendar_id)
        return self.session.exec(self._in_range(stmt, start, end)).all()

    def list_by_calendar_status_in_range(self, calendar_id: int, status: SlotStatus, start: datetime, end: datetime) -> List[models.TimeSlot]:
        stmt = select(models.TimeSlot).where(
            models.TimeSlot.calendar_id == calendar_id,
            models.TimeSlot.status == status,
        )
        return self.session.exec(self._in_range(stmt, start, end)).all()

    def exists_overlapping(self, calendar_id: int, start: datetime, end: datetime, exclude_id: Optional[int] = None) -> bool:
        """Return True if another slot of the calendar intersects `[start, end)`.

        Touching intervals (one ends exactly when the other starts) do not
        overlap.
        """
        stmt = select(models.TimeSlot.id).where(
            models.TimeSlot.calendar_id == calendar_id,
            models.TimeSlot.start_time < end,
            models.TimeSlot.end_time > start,
        )
        if exclude_id is not None:
            stmt = stmt.where(models.TimeSlot.id != exclude_id)
        return self.session.exec(stmt.limit(1)).first() is not None

    def _by_user(self, user_id: int, statuses, start: datetime, end: datetime) -> List[models.TimeSlot]:
        stmt = (
            select(models.TimeSlot)
            .join(models.Calendar, models.Calendar.id == models.TimeSlot.calendar_id)
            .where(models.Calendar.user_id == user_id, models.TimeSlot.status.in_(statuses))
        )
        return self.session.exec(self._in_range(stmt, start, end)).all()

    def list_free_by_user_in_range(self, user_id: int, start: datetime, end: datetime) -> List[models.TimeSlot]:
        return self._by_user(user_id, [SlotStatus.FREE], start, end)

    def list_busy_by_user_in_range(self, user_id: int, start: datetime, end: datetime) -> List[models.TimeSlot]:
        """Slots that cannot be booked: BUSY and BOOKED."""
        return self._by_user(user_id, [SlotStatus.BUSY, SlotStatus.BOOKED], start, end)

    def count_by_calendar_and_status(self, calendar_id: int, status: SlotStatus) -> int:
        stmt = select(func.count(models.TimeSlot.id)).where(
            models.TimeSlot.calendar_id == calendar_id,
            models.TimeSlot.status == status,
        )
        return self.session.exec(stmt).one()


class MeetingRepository(_Repository):
    """Persistence and range queries for `Meeting` aggregates."""

    def get(self, meeting_id: int) -> Optional[models.Meeting]:
        return self.session.get(models.Meeting, meeting_id)

    def get_by_time_slot_id(self, slot_id: int) -> Optional[models.Meeting]:
        stmt = select(models.Meeting).where(models.Meeting.time_slot_id == slot_id)
        return self.session.exec(stmt).first()

    def list_by_participant_in_range(self, user_id: int, start: datetime, end: datetime) -> List[models.Meeting]:
        """Meetings `user_id` takes part in, inside the range, by start time."""
        stmt = (
            select(models.Meeting)
            .join(models.TimeSlot, models.TimeSlot.id == models.Meeting.time_slot_id)
            .join(models.MeetingParticipant, models.MeetingParticipant.meeting_id == models.Meeting.id)
            .where(
                models.MeetingParticipant.user_id == user_id,
                models.TimeSlot.start_time >= start,
                models.TimeSlot.end_time <= end,
            )
            .order_by(models.TimeSlot.start_time)
        )
        # the participant join is on a composite key, so rows are already unique
        return self.session.exec(stmt).all()

    def list_by_owner_in_range(self, user_id: int, start: datetime, end: datetime) -> List[models.Meeting]:
        """Meetings booked into slots of `user_id`'s calendar."""
        stmt = (
            select(models.Meeting)
            .join(models.TimeSlot, models.TimeSlot.id == models.Meeting.time_slot_id)
            .join(models.Calendar, models.Calendar.id == models.TimeSlot.calendar_id)
            .where(
                models.Calendar.user_id == user_id,
                models.TimeSlot.start_time >= start,
                models.TimeSlot.end_time <= end,
            )
            .order_by(models.TimeSlot.start_time)
        )
        return self.session.exec(stmt).all()
