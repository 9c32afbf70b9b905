"""SQLModel data models.

This module defines the scheduling tables using SQLModel. A `User` owns
exactly one `Calendar`; the calendar holds `TimeSlot` rows and a slot
can be booked by at most one `Meeting`. Meeting participants are linked
through the `meeting_participants` association table. All timestamps are
timezone-aware UTC values.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Index
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class SlotStatus(str, Enum):
    FREE = "FREE"      # available for booking
    BUSY = "BUSY"      # marked unavailable by the owner
    BOOKED = "BOOKED"  # occupied by a meeting


class MeetingParticipant(SQLModel, table=True):
    """Association row between a meeting and a participating user."""
    __tablename__ = "meeting_participants"

    meeting_id: Optional[int] = Field(default=None, foreign_key="meetings.id", primary_key=True, index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", primary_key=True, index=True)


class User(SQLModel, table=True):
    """A person who owns a calendar and can take part in meetings."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False, max_length=100)
    email: str = Field(index=True, nullable=False, unique=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_column_kwargs={"onupdate": utcnow})

    calendar: Optional["Calendar"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"uselist": False, "cascade": "all, delete-orphan"},
    )
    meetings: List["Meeting"] = Relationship(back_populates="participants", link_model=MeetingParticipant)


class Calendar(SQLModel, table=True):
    """The single calendar of a user; `timezone` is informational."""
    __tablename__ = "calendars"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, unique=True, index=True)
    timezone: str = Field(default="UTC", nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_column_kwargs={"onupdate": utcnow})

    user: Optional[User] = Relationship(back_populates="calendar")
    time_slots: List["TimeSlot"] = Relationship(
        back_populates="calendar",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class TimeSlot(SQLModel, table=True):
    """A bookable interval on a calendar."""
    __tablename__ = "time_slots"
    __table_args__ = (
        Index("idx_timeslot_calendar_time", "calendar_id", "start_time", "end_time"),
        Index("idx_timeslot_calendar_status", "calendar_id", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    calendar_id: int = Field(foreign_key="calendars.id", nullable=False)
    start_time: datetime = Field(nullable=False)
    end_time: datetime = Field(nullable=False)
    status: SlotStatus = Field(default=SlotStatus.FREE, nullable=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_column_kwargs={"onupdate": utcnow})

    calendar: Optional[Calendar] = Relationship(back_populates="time_slots")
    meeting: Optional["Meeting"] = Relationship(
        back_populates="time_slot",
        sa_relationship_kwargs={"uselist": False, "cascade": "all, delete-orphan"},
    )

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class Meeting(SQLModel, table=True):
    """A meeting booked into exactly one time slot."""
    __tablename__ = "meetings"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(nullable=False)
    description: Optional[str] = Field(default=None, max_length=1000)
    time_slot_id: int = Field(foreign_key="time_slots.id", nullable=False, unique=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_column_kwargs={"onupdate": utcnow})

    time_slot: Optional[TimeSlot] = Relationship(back_populates="meeting")
    participants: List[User] = Relationship(back_populates="meetings", link_model=MeetingParticipant)
