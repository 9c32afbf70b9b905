from datetime import timedelta

import pytest

from minidoodle import models, schemas
from minidoodle.exceptions import BusinessError, ResourceNotFoundError, SlotConflictError
from minidoodle.models import SlotStatus, utcnow
from minidoodle.services import MeetingService, TimeSlotService, UserService


@pytest.fixture()
def owner(session):
    return UserService(session).create_user(schemas.UserIn(name="John Doe", email="john@example.com"))


@pytest.fixture()
def tomorrow():
    return (utcnow() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)


def _slot(session, user_id, start, minutes=60):
    req = schemas.CreateTimeSlotRequest(start_time=start, end_time=start + timedelta(minutes=minutes))
    return TimeSlotService(session).create_time_slot(user_id, req)


def test_create_time_slot(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    assert slot.status == SlotStatus.FREE
    assert slot.duration_minutes == 60
    assert slot.calendar_id == UserService(session).get_calendar(owner.id).id


def test_create_time_slot_with_duration(session, owner, tomorrow):
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow, duration_minutes=45)
    slot = TimeSlotService(session).create_time_slot(owner.id, req)
    assert slot.end_time == tomorrow + timedelta(minutes=45)


def test_duration_wins_over_end_time(session, owner, tomorrow):
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow, end_time=tomorrow + timedelta(hours=3), duration_minutes=30)
    slot = TimeSlotService(session).create_time_slot(owner.id, req)
    assert slot.duration_minutes == 30


def test_create_time_slot_calendar_not_found(session, tomorrow):
    with pytest.raises(ResourceNotFoundError, match="Calendar not found"):
        _slot(session, 42, tomorrow)


def test_create_time_slot_overlap_conflict(session, owner, tomorrow):
    _slot(session, owner.id, tomorrow)
    with pytest.raises(SlotConflictError):
        _slot(session, owner.id, tomorrow + timedelta(minutes=30))


def test_adjacent_slots_do_not_overlap(session, owner, tomorrow):
    _slot(session, owner.id, tomorrow)
    nxt = _slot(session, owner.id, tomorrow + timedelta(minutes=60))
    assert nxt.id is not None


def test_other_users_slots_do_not_conflict(session, owner, tomorrow):
    other = UserService(session).create_user(schemas.UserIn(name="Jane", email="jane@example.com"))
    _slot(session, owner.id, tomorrow)
    assert _slot(session, other.id, tomorrow).id is not None


@pytest.mark.parametrize(
    "offset, minutes, message",
    [
        (timedelta(days=-2), 60, "past"),
        (timedelta(0), 10, "at least 15"),
        (timedelta(0), 481, "cannot exceed"),
    ],
)
def test_create_time_slot_rules(session, owner, tomorrow, offset, minutes, message):
    with pytest.raises(BusinessError, match=message):
        _slot(session, owner.id, tomorrow + offset, minutes)


def test_start_after_end_rejected(session, owner, tomorrow):
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow, end_time=tomorrow - timedelta(hours=1))
    with pytest.raises(BusinessError, match="before end"):
        TimeSlotService(session).create_time_slot(owner.id, req)


def test_update_time_slot_excludes_itself_from_overlap(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow + timedelta(minutes=30), duration_minutes=60)
    moved = TimeSlotService(session).update_time_slot(slot.id, req)
    assert moved.start_time == tomorrow + timedelta(minutes=30)


def test_mark_busy_and_free(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    svc = TimeSlotService(session)
    assert svc.mark_slot_busy(slot.id).status == SlotStatus.BUSY
    assert svc.mark_slot_free(slot.id).status == SlotStatus.FREE


def test_status_cannot_be_set_to_booked_manually(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    with pytest.raises(BusinessError):
        TimeSlotService(session).update_slot_status(slot.id, SlotStatus.BOOKED)


def test_booked_slot_is_locked(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    MeetingService(session).create_meeting(schemas.CreateMeetingRequest(time_slot_id=slot.id, title="Sync"))
    svc = TimeSlotService(session)
    with pytest.raises(BusinessError, match="Cancel the meeting first"):
        svc.delete_time_slot(slot.id)
    with pytest.raises(BusinessError):
        svc.mark_slot_free(slot.id)
    with pytest.raises(BusinessError, match="booked"):
        svc.update_time_slot(slot.id, schemas.CreateTimeSlotRequest(start_time=tomorrow, duration_minutes=30))
    assert svc.get_time_slot(slot.id).status == SlotStatus.BOOKED


def test_delete_time_slot(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    svc = TimeSlotService(session)
    svc.delete_time_slot(slot.id)
    with pytest.raises(ResourceNotFoundError):
        svc.get_time_slot(slot.id)


def test_list_slots_and_availability(session, owner, tomorrow):
    first = _slot(session, owner.id, tomorrow)
    second = _slot(session, owner.id, tomorrow + timedelta(hours=1))
    third = _slot(session, owner.id, tomorrow + timedelta(hours=2))
    svc = TimeSlotService(session)
    svc.mark_slot_busy(second.id)
    MeetingService(session).create_meeting(schemas.CreateMeetingRequest(time_slot_id=third.id, title="Review"))

    day_start = tomorrow.replace(hour=0)
    day_end = day_start + timedelta(days=1)
    listed = svc.list_slots(owner.id, day_start, day_end)
    assert [s.id for s in listed] == [first.id, second.id, third.id]

    availability = svc.get_availability(owner.id, day_start, day_end)
    assert [s.id for s in availability.free_slots] == [first.id]
    assert [s.id for s in availability.busy_slots] == [second.id, third.id]
    assert availability.total_free_slots == 1
    assert availability.total_busy_slots == 2


def test_range_only_includes_contained_slots(session, owner, tomorrow):
    _slot(session, owner.id, tomorrow)
    svc = TimeSlotService(session)
    assert svc.list_slots(owner.id, tomorrow + timedelta(minutes=30), tomorrow + timedelta(hours=2)) == []


def test_inverted_range_rejected(session, owner, tomorrow):
    with pytest.raises(BusinessError):
        TimeSlotService(session).get_availability(owner.id, tomorrow, tomorrow - timedelta(days=1))


@pytest.mark.parametrize(
    "length, accepted",
    [
        (timedelta(minutes=15), True),
        (timedelta(minutes=14, seconds=59), False),
        (timedelta(minutes=480), True),
        (timedelta(minutes=480, seconds=30), True),
        (timedelta(minutes=481), False),
    ],
)
def test_duration_limits_count_whole_minutes(session, owner, tomorrow, length, accepted):
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow, end_time=tomorrow + length)
    svc = TimeSlotService(session)
    if accepted:
        assert svc.create_time_slot(owner.id, req).duration_minutes == int(length.total_seconds() // 60)
    else:
        with pytest.raises(BusinessError, match="minutes"):
            svc.create_time_slot(owner.id, req)


def test_timestamps_are_stored_as_utc(session, owner, tomorrow):
    slot = _slot(session, owner.id, tomorrow)
    session.expire_all()
    stored = session.get(models.TimeSlot, slot.id)
    assert stored.start_time == tomorrow
    assert stored.start_time.utcoffset() == timedelta(0)
    assert stored.created_at.utcoffset() == timedelta(0)


def test_naive_input_is_taken_as_utc(tomorrow):
    req = schemas.CreateTimeSlotRequest(start_time=tomorrow.replace(tzinfo=None), duration_minutes=30)
    assert req.start_time == tomorrow
    assert req.start_time.utcoffset() == timedelta(0)
