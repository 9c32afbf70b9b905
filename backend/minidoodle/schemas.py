"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Datetimes are exchanged as ISO-8601
strings; values are normalised to aware UTC on the way in.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, EmailStr, Field, PositiveInt, field_validator, model_validator

from .models import SlotStatus


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to aware UTC; naive values are taken to be UTC already."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


class UserIn(BaseModel):
    """Payload for creating or updating a user."""
    name: str = Field(..., max_length=100, description="Display name")
    email: EmailStr = Field(..., description="Unique email address")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class ParticipantOut(BaseModel):
    id: int
    name: str
    email: str


class CalendarOut(BaseModel):
    id: int
    user_id: int
    timezone: str
    created_at: datetime
    updated_at: datetime


class CreateTimeSlotRequest(BaseModel):
    """Request for creating or moving a time slot.

    Either `end_time` or `duration_minutes` must be supplied. When both
    are present the duration wins and `end_time` is recomputed.
    """
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[PositiveInt] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalise_times(cls, value):
        return to_utc(value)

    @model_validator(mode="after")
    def end_or_duration(self):
        if self.end_time is None and self.duration_minutes is None:
            raise ValueError("either end_time or duration_minutes is required")
        return self


class TimeSlotOut(BaseModel):
    id: int
    calendar_id: int
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    duration_minutes: int
    created_at: datetime
    updated_at: datetime


class CreateMeetingRequest(BaseModel):
    """Request for booking a meeting into a free time slot."""
    time_slot_id: int
    title: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    participant_ids: Set[int] = Field(default_factory=set)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class UpdateMeetingRequest(BaseModel):
    """Request for editing a meeting; `participant_ids=None` keeps the list."""
    title: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    participant_ids: Optional[Set[int]] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class MeetingOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    time_slot_id: int
    participant_ids: List[int]
    participants: List[ParticipantOut]
    start_time: datetime
    end_time: datetime
    created_at: datetime
    updated_at: datetime


class AvailabilityResponse(BaseModel):
    free_slots: List[TimeSlotOut]
    busy_slots: List[TimeSlotOut]
    total_free_slots: int
    total_busy_slots: int


class ErrorResponse(BaseModel):
    """Shape of every error body returned by the API."""
    timestamp: datetime
    status: int
    error: str
    message: str
    path: str
    errors: Optional[Dict[str, str]] = None
