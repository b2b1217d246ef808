# booking.py
import logging

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ProviderUnavailable, SlotConflict, ValidationError
from .models import Appointment, Provider, ACTIVE_STATUSES, SESSION_MODES, SESSION_TYPES
from .utils import add_minutes, interval_of, overlaps, parse_time_of_day

logger = logging.getLogger(__name__)

MIN_DURATION = 30
MAX_DURATION = 180
MAX_NOTES_LENGTH = 1000

BOOKINGS_CREATED = Counter("appointment_bookings_total", "Appointments successfully booked")
BOOKING_CONFLICTS = Counter("appointment_booking_conflicts_total", "Booking attempts rejected for overlapping an existing appointment")


def session_amount(hourly_rate, duration):
    return round(hourly_rate / 60 * duration, 2)


def validate_booking_request(start_time, duration, session_type, session_mode, notes):
    parse_time_of_day(start_time)
    if isinstance(duration, bool) or not isinstance(duration, int) or not MIN_DURATION <= duration <= MAX_DURATION:
        raise ValidationError(f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")
    if session_type not in SESSION_TYPES:
        raise ValidationError(f"Invalid session type: {session_type}")
    if session_mode not in SESSION_MODES:
        raise ValidationError(f"Invalid session mode: {session_mode}")
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")


def find_conflict(db: Session, provider_id, date, start, end):
    active = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.date == date,
        Appointment.status.in_(ACTIVE_STATUSES)
    ).all()
    for appointment in active:
        if overlaps(start, end, *interval_of(appointment)):
            return appointment
    return None


def book(db: Session, client_id, provider_id, date, start_time, duration,
         session_type='individual', session_mode='video', notes=None):
    """
    Book a pending appointment with a provider.

    The provider row is locked for the length of the transaction, so concurrent bookings for
    the same provider run the conflict check one after another. Any store error while checking
    or inserting rejects the booking.
    """
    validate_booking_request(start_time, duration, session_type, session_mode, notes)
    end_time = add_minutes(start_time, duration)
    start, end = parse_time_of_day(start_time), parse_time_of_day(end_time)

    try:
        provider = db.query(Provider).filter_by(id=provider_id).with_for_update().first()
        if not provider or not provider.is_active or not provider.is_verified:
            db.rollback()
            raise ProviderUnavailable()

        conflict = find_conflict(db, provider_id, date, start, end)
        if conflict:
            db.rollback()
            BOOKING_CONFLICTS.inc()
            logger.warning(f"Booking {start_time}-{end_time} on {date} for provider {provider_id} "
                           f"overlaps appointment {conflict.id}")
            raise SlotConflict()

        appointment = Appointment(
            client_id=client_id,
            provider_id=provider_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            session_type=session_type,
            session_mode=session_mode,
            notes=notes,
            amount=session_amount(provider.hourly_rate, duration),
            status='pending'
        )
        db.add(appointment)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Booking for provider {provider_id} on {date} failed in the store: {str(e)}")
        raise SlotConflict("Time slot could not be reserved, please try again") from e

    db.refresh(appointment)
    BOOKINGS_CREATED.inc()
    logger.info(f"Appointment {appointment.id} booked: provider {provider_id}, client {client_id}, "
                f"{date} {start_time}-{end_time}")
    return appointment
