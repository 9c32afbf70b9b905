from datetime import timedelta

import pytest

from minidoodle import schemas
from minidoodle.models import SlotStatus, utcnow
from minidoodle.repositories import CalendarRepository, TimeSlotRepository
from minidoodle.services import TimeSlotService, UserService


@pytest.fixture()
def owner(session):
    return UserService(session).create_user(schemas.UserIn(name="John Doe", email="john@example.com"))


@pytest.fixture()
def tomorrow():
    return (utcnow() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)


@pytest.fixture()
def day(session, owner, tomorrow):
    """Three back-to-back hourly slots; the middle one is BUSY."""
    svc = TimeSlotService(session)
    slots = [
        svc.create_time_slot(owner.id, schemas.CreateTimeSlotRequest(start_time=tomorrow + timedelta(hours=i), duration_minutes=60))
        for i in range(3)
    ]
    svc.mark_slot_busy(slots[1].id)
    return slots


def test_calendar_exists_by_user_id(session, owner):
    repo = CalendarRepository(session)
    assert repo.exists_by_user_id(owner.id)
    assert not repo.exists_by_user_id(999)


def test_list_by_calendar_status_in_range(session, tomorrow, day):
    first, second, third = day
    repo = TimeSlotRepository(session)
    calendar_id = first.calendar_id
    # both range ends are inclusive
    end = tomorrow + timedelta(hours=3)
    free = repo.list_by_calendar_status_in_range(calendar_id, SlotStatus.FREE, tomorrow, end)
    assert [s.id for s in free] == [first.id, third.id]
    busy = repo.list_by_calendar_status_in_range(calendar_id, SlotStatus.BUSY, tomorrow, end)
    assert [s.id for s in busy] == [second.id]


def test_status_range_drops_partially_covered_slots(session, tomorrow, day):
    first, _, third = day
    repo = TimeSlotRepository(session)
    cut = repo.list_by_calendar_status_in_range(
        first.calendar_id, SlotStatus.FREE, tomorrow + timedelta(minutes=1), tomorrow + timedelta(hours=3)
    )
    assert [s.id for s in cut] == [third.id]
    assert repo.list_by_calendar_status_in_range(first.calendar_id, SlotStatus.FREE, tomorrow, tomorrow + timedelta(minutes=59)) == []


def test_count_by_calendar_and_status(session, day):
    calendar_id = day[0].calendar_id
    repo = TimeSlotRepository(session)
    assert repo.count_by_calendar_and_status(calendar_id, SlotStatus.FREE) == 2
    assert repo.count_by_calendar_and_status(calendar_id, SlotStatus.BUSY) == 1
    assert repo.count_by_calendar_and_status(calendar_id, SlotStatus.BOOKED) == 0
    assert repo.count_by_calendar_and_status(calendar_id + 1, SlotStatus.FREE) == 0
