# slots.py
import json
import logging
from typing import NamedTuple

from sqlalchemy.orm import Session

from .dependencies import CACHE_EXPIRY_SECONDS, SLOT_MINUTES
from .errors import ProviderNotFound, ValidationError
from .models import Appointment, AvailabilityWindow, Provider, ACTIVE_STATUSES, WEEKDAYS
from .utils import format_time_of_day, interval_of, overlaps, parse_time_of_day

logger = logging.getLogger(__name__)

DEFAULT_WORKING_WINDOW = ("09:00", "18:00")


class Slot(NamedTuple):
    start_time: str
    end_time: str


class AvailableSlots:
    """
    Free slots of one provider on one date, ascending by start time.

    Iterating recomputes the slots from the captured windows and bookings, so the
    sequence can be walked any number of times.
    """

    def __init__(self, windows, booked, slot_minutes):
        self.windows = sorted(windows)
        self.booked = list(booked)
        self.slot_minutes = slot_minutes

    def __iter__(self):
        for window_start, window_end in self.windows:
            start = window_start
            while start + self.slot_minutes <= window_end:
                end = start + self.slot_minutes
                if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in self.booked):
                    yield Slot(format_time_of_day(start), format_time_of_day(end))
                start = end

    def __repr__(self):
        return f"AvailableSlots(windows={self.windows!r}, slot_minutes={self.slot_minutes})"


def working_windows(template, day):
    """Windows in minutes for a weekday; an empty template means the default working day."""
    if not template:
        return [tuple(parse_time_of_day(t) for t in DEFAULT_WORKING_WINDOW)]
    return merge_windows(
        (parse_time_of_day(entry.start_time), parse_time_of_day(entry.end_time))
        for entry in template
        if entry.day == day and entry.is_available
    )


def merge_windows(windows):
    """Collapse overlapping windows so every minute of the day is walked at most once."""
    merged = []
    for start, end in sorted(windows):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def booked_intervals(db: Session, provider_id, date):
    appointments = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.date == date,
        Appointment.status.in_(ACTIVE_STATUSES)
    ).all()
    return [interval_of(appointment) for appointment in appointments]


def available_slots(db: Session, provider_id, date, slot_minutes=SLOT_MINUTES):
    if slot_minutes <= 0:
        raise ValidationError("slot_minutes must be positive")

    provider = db.query(Provider).filter_by(id=provider_id).first()
    if not provider:
        raise ProviderNotFound()

    day = WEEKDAYS[date.weekday()]
    template = db.query(AvailabilityWindow).filter_by(provider_id=provider_id).order_by(
        AvailabilityWindow.position).all()

    return AvailableSlots(working_windows(template, day), booked_intervals(db, provider_id, date), slot_minutes)


def replace_availability(db: Session, provider_id, entries):
    """Swap a provider's weekly template for entries, given as dicts in display order."""
    provider = db.query(Provider).filter_by(id=provider_id).first()
    if not provider:
        raise ProviderNotFound()

    windows = []
    for position, entry in enumerate(entries):
        day = str(entry.get('day', '')).lower()
        if day not in WEEKDAYS:
            raise ValidationError(f"Invalid day: {entry.get('day')!r}")
        start, end = parse_time_of_day(entry.get('start_time')), parse_time_of_day(entry.get('end_time'))
        if start >= end:
            raise ValidationError(f"Availability on {day} must start before it ends")
        for other in windows:
            if other.day == day and overlaps(start, end, *interval_of(other)):
                raise ValidationError(f"Availability on {day} overlaps {other.start_time}-{other.end_time}")
        windows.append(AvailabilityWindow(
            position=position,
            day=day,
            start_time=entry['start_time'],
            end_time=entry['end_time'],
            is_available=bool(entry.get('is_available', True))
        ))

    provider.availability = windows
    db.commit()
    logger.info(f"Availability template replaced for provider {provider_id} ({len(windows)} entries)")
    return provider.availability


def slots_cache_key(provider_id, date, slot_minutes=SLOT_MINUTES):
    return f"provider:{provider_id}:slots:{date.isoformat()}:{slot_minutes}"


def get_cached_slots(db: Session, redis_client, provider_id, date, slot_minutes=SLOT_MINUTES):
    cache_key = slots_cache_key(provider_id, date, slot_minutes)
    cached = redis_client.get(cache_key)
    if cached:
        logger.info(f"Retrieved from Redis: {cache_key}")
        return json.loads(cached)

    logger.info(f"Computed from database: {cache_key}")
    slots = [slot._asdict() for slot in available_slots(db, provider_id, date, slot_minutes)]
    redis_client.setex(cache_key, CACHE_EXPIRY_SECONDS, json.dumps(slots))
    return slots


def invalidate_slots(redis_client, provider_id, date=None):
    """Drop cached slot lists for one date, or for every date when date is None."""
    day = date.isoformat() if date else "*"
    keys = list(redis_client.scan_iter(match=f"provider:{provider_id}:slots:{day}:*"))
    if keys:
        redis_client.delete(*keys)
        logger.info(f"Invalidated {len(keys)} cached slot lists for provider {provider_id} ({day})")
