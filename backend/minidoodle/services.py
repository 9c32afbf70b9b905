"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and enforce the scheduling rules. Services validate input, execute
domain logic, persist aggregates via repositories and return API
schemas, so nothing lazy-loaded escapes the request session.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import metrics, models, repositories, schemas
from .config import settings
from .exceptions import BusinessError, ResourceNotFoundError, SlotConflictError
from .models import SlotStatus, utcnow

logger = logging.getLogger("minidoodle.services")


def to_user_out(user: models.User) -> schemas.UserOut:
    return schemas.UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def to_calendar_out(calendar: models.Calendar) -> schemas.CalendarOut:
    return schemas.CalendarOut(
        id=calendar.id,
        user_id=calendar.user_id,
        timezone=calendar.timezone,
        created_at=calendar.created_at,
        updated_at=calendar.updated_at,
    )


def to_slot_out(slot: models.TimeSlot) -> schemas.TimeSlotOut:
    return schemas.TimeSlotOut(
        id=slot.id,
        calendar_id=slot.calendar_id,
        start_time=slot.start_time,
        end_time=slot.end_time,
        status=slot.status,
        duration_minutes=slot.duration_minutes,
        created_at=slot.created_at,
        updated_at=slot.updated_at,
    )


def to_meeting_out(meeting: models.Meeting) -> schemas.MeetingOut:
    participants = sorted(meeting.participants, key=lambda u: u.id)
    return schemas.MeetingOut(
        id=meeting.id,
        title=meeting.title,
        description=meeting.description,
        time_slot_id=meeting.time_slot_id,
        participant_ids=[u.id for u in participants],
        participants=[schemas.ParticipantOut(id=u.id, name=u.name, email=u.email) for u in participants],
        start_time=meeting.time_slot.start_time,
        end_time=meeting.time_slot.end_time,
        created_at=meeting.created_at,
        updated_at=meeting.updated_at,
    )


def _check_range(start: datetime, end: datetime) -> None:
    if start > end:
        raise BusinessError("Range start must not be after range end")


class UserService:
    """User registration and maintenance; every user gets a calendar."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.calendar_repo = repositories.CalendarRepository(session)

    def _get(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise ResourceNotFoundError(f"User not found with id: {user_id}")
        return user

    def create_user(self, payload: schemas.UserIn) -> schemas.UserOut:
        """Create a user together with a calendar in the default timezone."""
        logger.info("Creating user with email: %s", payload.email)
        if self.user_repo.exists_by_email(payload.email):
            raise BusinessError(f"User with email {payload.email} already exists")
        user = models.User(name=payload.name, email=payload.email)
        user.calendar = models.Calendar(timezone=settings.DEFAULT_TIMEZONE)
        try:
            user = self.user_repo.save(user)
        except IntegrityError:
            self.session.rollback()
            raise BusinessError(f"User with email {payload.email} already exists")
        logger.info("Created user with ID: %s", user.id)
        return to_user_out(user)

    def get_user(self, user_id: int) -> schemas.UserOut:
        return to_user_out(self._get(user_id))

    def get_user_by_email(self, email: str) -> schemas.UserOut:
        user = self.user_repo.get_by_email(email)
        if not user:
            raise ResourceNotFoundError(f"User not found with email: {email}")
        return to_user_out(user)

    def list_users(self) -> List[schemas.UserOut]:
        return [to_user_out(u) for u in self.user_repo.list_all()]

    def update_user(self, user_id: int, payload: schemas.UserIn) -> schemas.UserOut:
        user = self._get(user_id)
        if user.email != payload.email and self.user_repo.exists_by_email(payload.email):
            raise BusinessError(f"User with email {payload.email} already exists")
        user.name = payload.name
        user.email = payload.email
        try:
            user = self.user_repo.save(user)
        except IntegrityError:
            self.session.rollback()
            raise BusinessError(f"User with email {payload.email} already exists")
        logger.info("Updated user with ID: %s", user_id)
        return to_user_out(user)

    def delete_user(self, user_id: int) -> None:
        """Delete a user, their calendar, slots and the meetings booked in them."""
        user = self._get(user_id)
        self.user_repo.delete(user)
        logger.info("Deleted user with ID: %s", user_id)

    def get_calendar(self, user_id: int) -> schemas.CalendarOut:
        calendar = self.calendar_repo.get_by_user_id(user_id)
        if not calendar:
            raise ResourceNotFoundError(f"Calendar not found for user: {user_id}")
        return to_calendar_out(calendar)


class TimeSlotService:
    """Publish, move and mark time slots on a user's calendar."""
    def __init__(self, session: Session):
        self.session = session
        self.slot_repo = repositories.TimeSlotRepository(session)
        self.calendar_repo = repositories.CalendarRepository(session)

    def _calendar_for(self, user_id: int) -> models.Calendar:
        calendar = self.calendar_repo.get_by_user_id(user_id)
        if not calendar:
            raise ResourceNotFoundError(f"Calendar not found for user: {user_id}")
        return calendar

    def _get(self, slot_id: int) -> models.TimeSlot:
        slot = self.slot_repo.get(slot_id)
        if not slot:
            raise ResourceNotFoundError(f"Time slot not found with id: {slot_id}")
        return slot

    @staticmethod
    def _interval(request: schemas.CreateTimeSlotRequest):
        start = request.start_time
        end = request.end_time
        if request.duration_minutes is not None:
            end = start + timedelta(minutes=request.duration_minutes)
        return start, end

    def validate_interval(self, start: datetime, end: datetime, now: Optional[datetime] = None) -> None:
        """Apply the slot rules in order; raise `BusinessError` on the first failure."""
        if start > end:
            raise BusinessError("Start time must be before end time")
        if start < (now or utcnow()):
            raise BusinessError("Cannot create time slot in the past")
        minutes = int((end - start).total_seconds() // 60)
        if minutes < settings.MIN_SLOT_MINUTES:
            raise BusinessError(f"Time slot duration must be at least {settings.MIN_SLOT_MINUTES} minutes")
        if minutes > settings.MAX_SLOT_MINUTES:
            raise BusinessError(f"Time slot duration cannot exceed {settings.MAX_SLOT_MINUTES} minutes")

    def _check_overlap(self, calendar_id: int, start: datetime, end: datetime, exclude_id: Optional[int]) -> None:
        if self.slot_repo.exists_overlapping(calendar_id, start, end, exclude_id):
            metrics.SLOT_CONFLICTS.inc()
            raise SlotConflictError("Time slot overlaps with an existing slot")

    def create_time_slot(self, user_id: int, request: schemas.CreateTimeSlotRequest) -> schemas.TimeSlotOut:
        logger.info("Creating time slot for user: %s", user_id)
        calendar = self._calendar_for(user_id)
        start, end = self._interval(request)
        self.validate_interval(start, end)
        self._check_overlap(calendar.id, start, end, None)
        slot = models.TimeSlot(calendar_id=calendar.id, start_time=start, end_time=end, status=SlotStatus.FREE)
        slot = self.slot_repo.save(slot)
        metrics.TIME_SLOTS_CREATED.inc()
        logger.info("Created time slot with ID: %s", slot.id)
        return to_slot_out(slot)

    def get_time_slot(self, slot_id: int) -> schemas.TimeSlotOut:
        return to_slot_out(self._get(slot_id))

    def update_time_slot(self, slot_id: int, request: schemas.CreateTimeSlotRequest) -> schemas.TimeSlotOut:
        logger.info("Updating time slot: %s", slot_id)
        slot = self._get(slot_id)
        if slot.status == SlotStatus.BOOKED:
            raise BusinessError("Cannot update a booked time slot")
        start, end = self._interval(request)
        self.validate_interval(start, end)
        self._check_overlap(slot.calendar_id, start, end, slot_id)
        slot.start_time = start
        slot.end_time = end
        slot = self.slot_repo.save(slot)
        logger.info("Updated time slot with ID: %s", slot_id)
        return to_slot_out(slot)

    def delete_time_slot(self, slot_id: int) -> None:
        logger.info("Deleting time slot: %s", slot_id)
        slot = self._get(slot_id)
        if slot.status == SlotStatus.BOOKED:
            raise BusinessError("Cannot delete a booked time slot. Cancel the meeting first.")
        self.slot_repo.delete(slot)
        logger.info("Deleted time slot with ID: %s", slot_id)

    def mark_slot_busy(self, slot_id: int) -> schemas.TimeSlotOut:
        return self.update_slot_status(slot_id, SlotStatus.BUSY)

    def mark_slot_free(self, slot_id: int) -> schemas.TimeSlotOut:
        return self.update_slot_status(slot_id, SlotStatus.FREE)

    def update_slot_status(self, slot_id: int, status: SlotStatus) -> schemas.TimeSlotOut:
        """Toggle a slot between FREE and BUSY.

        BOOKED is owned by the meeting lifecycle: a booked slot only
        changes through cancelling its meeting, and a slot only becomes
        booked through creating one.
        """
        logger.info("Updating slot %s status to: %s", slot_id, status.value)
        slot = self._get(slot_id)
        if slot.status == SlotStatus.BOOKED:
            if status != SlotStatus.BOOKED:
                raise BusinessError("Cannot change status of a booked slot. Cancel the meeting first.")
            return to_slot_out(slot)
        if status == SlotStatus.BOOKED:
            raise BusinessError("A slot can only be booked by creating a meeting")
        slot.status = status
        slot = self.slot_repo.save(slot)
        return to_slot_out(slot)

    def list_slots(self, user_id: int, start: datetime, end: datetime) -> List[schemas.TimeSlotOut]:
        _check_range(start, end)
        calendar = self._calendar_for(user_id)
        slots = self.slot_repo.list_by_calendar_in_range(calendar.id, start, end)
        return [to_slot_out(s) for s in slots]

    def get_availability(self, user_id: int, start: datetime, end: datetime) -> schemas.AvailabilityResponse:
        """Split a user's slots in the range into bookable and unavailable ones."""
        logger.info("Getting availability for user %s between %s and %s", user_id, start, end)
        _check_range(start, end)
        self._calendar_for(user_id)
        free = [to_slot_out(s) for s in self.slot_repo.list_free_by_user_in_range(user_id, start, end)]
        busy = [to_slot_out(s) for s in self.slot_repo.list_busy_by_user_in_range(user_id, start, end)]
        return schemas.AvailabilityResponse(
            free_slots=free,
            busy_slots=busy,
            total_free_slots=len(free),
            total_busy_slots=len(busy),
        )


class MeetingService:
    """Book meetings into free slots and manage their participants."""
    def __init__(self, session: Session):
        self.session = session
        self.meeting_repo = repositories.MeetingRepository(session)
        self.slot_repo = repositories.TimeSlotRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def _get(self, meeting_id: int) -> models.Meeting:
        meeting = self.meeting_repo.get(meeting_id)
        if not meeting:
            raise ResourceNotFoundError(f"Meeting not found with id: {meeting_id}")
        return meeting

    def _user(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise ResourceNotFoundError(f"User not found with id: {user_id}")
        return user

    def _users(self, user_ids: Set[int]) -> List[models.User]:
        return [self._user(uid) for uid in sorted(user_ids)]

    def create_meeting(self, request: schemas.CreateMeetingRequest) -> schemas.MeetingOut:
        """Book `request.time_slot_id` and mark the slot BOOKED atomically.

        The slot row is locked for the rest of the transaction; the unique
        index on `meetings.time_slot_id` backs this up on databases
        without row locks.
        """
        logger.info("Creating meeting for time slot: %s", request.time_slot_id)
        slot = self.slot_repo.get_for_update(request.time_slot_id)
        if not slot:
            raise ResourceNotFoundError(f"Time slot not found with id: {request.time_slot_id}")
        if slot.status != SlotStatus.FREE:
            raise BusinessError("Time slot is not available for booking")
        if self.meeting_repo.get_by_time_slot_id(slot.id):
            raise BusinessError("Meeting already exists for this time slot")
        participants = self._users(request.participant_ids)

        meeting = models.Meeting(
            title=request.title,
            description=request.description,
            time_slot=slot,
            participants=participants,
        )
        slot.status = SlotStatus.BOOKED
        self.session.add(slot)
        try:
            meeting = self.meeting_repo.save(meeting)
        except IntegrityError:
            self.session.rollback()
            raise BusinessError("Meeting already exists for this time slot")
        metrics.MEETINGS_CREATED.inc()
        logger.info("Created meeting with ID: %s", meeting.id)
        return to_meeting_out(meeting)

    def get_meeting(self, meeting_id: int) -> schemas.MeetingOut:
        return to_meeting_out(self._get(meeting_id))

    def list_meetings_for_participant(self, user_id: int, start: datetime, end: datetime) -> List[schemas.MeetingOut]:
        logger.info("Getting meetings for user %s between %s and %s", user_id, start, end)
        _check_range(start, end)
        return [to_meeting_out(m) for m in self.meeting_repo.list_by_participant_in_range(user_id, start, end)]

    def list_meetings_for_owner(self, user_id: int, start: datetime, end: datetime) -> List[schemas.MeetingOut]:
        logger.info("Getting meetings owned by user %s between %s and %s", user_id, start, end)
        _check_range(start, end)
        return [to_meeting_out(m) for m in self.meeting_repo.list_by_owner_in_range(user_id, start, end)]

    def update_meeting(self, meeting_id: int, request: schemas.UpdateMeetingRequest) -> schemas.MeetingOut:
        logger.info("Updating meeting: %s", meeting_id)
        meeting = self._get(meeting_id)
        meeting.title = request.title
        meeting.description = request.description
        if request.participant_ids is not None:
            meeting.participants = self._users(request.participant_ids)
        meeting = self.meeting_repo.save(meeting)
        logger.info("Updated meeting with ID: %s", meeting_id)
        return to_meeting_out(meeting)

    def cancel_meeting(self, meeting_id: int) -> None:
        """Delete the meeting and release its slot back to FREE."""
        logger.info("Cancelling meeting: %s", meeting_id)
        meeting = self._get(meeting_id)
        slot = meeting.time_slot
        slot.status = SlotStatus.FREE
        self.session.add(slot)
        self.meeting_repo.delete(meeting)
        metrics.MEETINGS_CANCELLED.inc()
        logger.info("Cancelled meeting with ID: %s", meeting_id)

    def add_participant(self, meeting_id: int, user_id: int) -> schemas.MeetingOut:
        logger.info("Adding participant %s to meeting %s", user_id, meeting_id)
        meeting = self._get(meeting_id)
        user = self._user(user_id)
        if user not in meeting.participants:
            meeting.participants.append(user)
            meeting = self.meeting_repo.save(meeting)
        return to_meeting_out(meeting)

    def remove_participant(self, meeting_id: int, user_id: int) -> schemas.MeetingOut:
        logger.info("Removing participant %s from meeting %s", user_id, meeting_id)
        meeting = self._get(meeting_id)
        user = self._user(user_id)
        if user in meeting.participants:
            meeting.participants.remove(user)
            meeting = self.meeting_repo.save(meeting)
        return to_meeting_out(meeting)
