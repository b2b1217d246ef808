import json

import pytest

from appointment_system.app.errors import ProviderNotFound, ValidationError
from appointment_system.app.slots import (Slot, available_slots, get_cached_slots, invalidate_slots,
                                          replace_availability, slots_cache_key)
from .conftest import BOOKING_DATE, make_appointment, make_client, make_provider


def test_default_working_day_without_template(db):
    provider = make_provider(db)

    slots = list(available_slots(db, provider.id, BOOKING_DATE))

    assert len(slots) == 9
    assert slots[0] == Slot("09:00", "10:00")
    assert slots[-1] == Slot("17:00", "18:00")


def test_fully_booked_day_has_no_slots(db):
    provider = make_provider(db)
    client = make_client(db)
    for hour in range(9, 18):
        make_appointment(db, client, provider, start_time=f"{hour:02d}:00", end_time=f"{hour + 1:02d}:00",
                         status="confirmed" if hour % 2 else "pending")

    assert list(available_slots(db, provider.id, BOOKING_DATE)) == []


def test_partial_overlap_removes_both_touched_slots(db):
    provider = make_provider(db)
    client = make_client(db)
    make_appointment(db, client, provider, start_time="10:30", end_time="11:30")

    starts = [slot.start_time for slot in available_slots(db, provider.id, BOOKING_DATE)]

    assert "10:00" not in starts
    assert "11:00" not in starts
    assert "09:00" in starts and "12:00" in starts


def test_cancelled_and_completed_appointments_free_their_slot(db):
    provider = make_provider(db)
    client = make_client(db)
    make_appointment(db, client, provider, start_time="09:00", end_time="10:00", status="cancelled")
    make_appointment(db, client, provider, start_time="10:00", end_time="11:00", status="no-show")

    starts = [slot.start_time for slot in available_slots(db, provider.id, BOOKING_DATE)]

    assert starts[:2] == ["09:00", "10:00"]


def test_template_windows_and_granularity(db):
    # BOOKING_DATE is a Tuesday
    provider = make_provider(db, availability=[
        ("tuesday", "14:00", "16:00"),
        ("tuesday", "08:00", "09:30"),
        ("wednesday", "09:00", "17:00"),
    ])

    slots = list(available_slots(db, provider.id, BOOKING_DATE, slot_minutes=30))

    assert [s.start_time for s in slots] == ["08:00", "08:30", "09:00", "14:00", "14:30", "15:00", "15:30"]


def test_slot_must_fit_inside_window(db):
    provider = make_provider(db, availability=[("tuesday", "09:00", "10:30")])

    slots = list(available_slots(db, provider.id, BOOKING_DATE, slot_minutes=60))

    assert slots == [Slot("09:00", "10:00")]


def test_day_missing_from_template_has_no_slots(db):
    provider = make_provider(db, availability=[("monday", "09:00", "17:00")])

    assert list(available_slots(db, provider.id, BOOKING_DATE)) == []


def test_slots_sequence_is_restartable(db):
    provider = make_provider(db)

    slots = available_slots(db, provider.id, BOOKING_DATE)

    assert list(slots) == list(slots)


def test_unknown_provider(db):
    with pytest.raises(ProviderNotFound):
        available_slots(db, 999, BOOKING_DATE)


def test_replace_availability_validates_entries(db):
    provider = make_provider(db)

    with pytest.raises(ValidationError):
        replace_availability(db, provider.id, [{"day": "funday", "start_time": "09:00", "end_time": "10:00"}])
    with pytest.raises(ValidationError):
        replace_availability(db, provider.id, [{"day": "monday", "start_time": "11:00", "end_time": "10:00"}])

    windows = replace_availability(db, provider.id, [
        {"day": "Tuesday", "start_time": "13:00", "end_time": "15:00", "is_available": True},
        {"day": "friday", "start_time": "09:00", "end_time": "12:00", "is_available": False},
    ])

    assert [(w.day, w.start_time) for w in windows] == [("tuesday", "13:00"), ("friday", "09:00")]
    assert [s.start_time for s in available_slots(db, provider.id, BOOKING_DATE)] == ["13:00", "14:00"]


def test_cached_slots_read_through_and_invalidate(db, redis_client):
    provider = make_provider(db)
    client = make_client(db)

    first = get_cached_slots(db, redis_client, provider.id, BOOKING_DATE)
    assert len(first) == 9
    assert json.loads(redis_client.get(slots_cache_key(provider.id, BOOKING_DATE))) == first

    make_appointment(db, client, provider, start_time="09:00", end_time="10:00")
    # stale until invalidated
    assert get_cached_slots(db, redis_client, provider.id, BOOKING_DATE) == first

    invalidate_slots(redis_client, provider.id, BOOKING_DATE)
    refreshed = get_cached_slots(db, redis_client, provider.id, BOOKING_DATE)
    assert refreshed[0] == {"start_time": "10:00", "end_time": "11:00"}


def test_replace_availability_rejects_overlapping_windows_on_one_day(db):
    provider = make_provider(db, availability=[("tuesday", "08:00", "09:00")])

    with pytest.raises(ValidationError):
        replace_availability(db, provider.id, [
            {"day": "tuesday", "start_time": "09:00", "end_time": "12:00"},
            {"day": "wednesday", "start_time": "10:00", "end_time": "13:00"},
            {"day": "tuesday", "start_time": "10:00", "end_time": "13:00"},
        ])
    db.rollback()

    assert [s.start_time for s in available_slots(db, provider.id, BOOKING_DATE)] == ["08:00"]


def test_stored_overlapping_windows_yield_each_slot_once_in_order(db):
    provider = make_provider(db, availability=[
        ("tuesday", "10:00", "13:00"),
        ("tuesday", "09:00", "12:00"),
    ])

    starts = [slot.start_time for slot in available_slots(db, provider.id, BOOKING_DATE)]

    assert starts == ["09:00", "10:00", "11:00", "12:00"]
    assert starts == sorted(set(starts))
