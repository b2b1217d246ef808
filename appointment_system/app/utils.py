import re

from .errors import FormatError, ValidationError
from .models import Appointment

TIME_OF_DAY_RE = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')
MINUTES_PER_DAY = 24 * 60


def parse_time_of_day(time_str):
    """Convert an 'HH:MM' string into minutes since midnight."""
    match = TIME_OF_DAY_RE.match(time_str) if isinstance(time_str, str) else None
    if not match:
        raise FormatError(f"Invalid time of day: {time_str!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time_of_day(minutes):
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(time_of_day, minutes):
    """
    Shift a time of day forward without leaving the day.

    Appointments never span midnight, so anything ending at or after 24:00 is rejected.
    """
    end = parse_time_of_day(time_of_day) + minutes
    if end >= MINUTES_PER_DAY:
        raise ValidationError(f"{time_of_day} plus {minutes} minutes runs past midnight")
    return format_time_of_day(end)


def overlaps(a_start, a_end, b_start, b_end):
    """Half-open [start, end) overlap test; back-to-back intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def interval_of(appointment):
    return parse_time_of_day(appointment.start_time), parse_time_of_day(appointment.end_time)


def provider_summary(provider):
    return {
        "id": provider.id,
        "first_name": provider.first_name,
        "last_name": provider.last_name,
        "specializations": list(provider.specializations or []),
        "rating": provider.rating,
    }


def serialize_appointment(appointment: Appointment, include_provider: bool = False):
    serialized = {
        "id": appointment.id,
        "client_id": appointment.client_id,
        "provider_id": appointment.provider_id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time,
        "end_time": appointment.end_time,
        "duration": appointment.duration,
        "status": appointment.status,
        "session_type": appointment.session_type,
        "session_mode": appointment.session_mode,
        "notes": appointment.notes,
        "cancellation_reason": appointment.cancellation_reason,
        "rating": appointment.rating,
        "review": appointment.review,
        "payment_status": appointment.payment_status,
        "amount": appointment.amount,
        "meeting_link": appointment.meeting_link,
        "created_at": appointment.created_at.isoformat() if appointment.created_at else None,
    }
    if include_provider and appointment.provider is not None:
        serialized["provider"] = provider_summary(appointment.provider)
    return serialized
