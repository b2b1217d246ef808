# lifecycle.py
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .auth import Actor, AdminActor, ProviderActor
from .errors import InvalidTransition, NotCancellable, NotFound, NotReviewable, ValidationError
from .models import Appointment, Provider, ACTIVE_STATUSES

logger = logging.getLogger(__name__)

PROVIDER_TARGET_STATUSES = ('confirmed', 'cancelled', 'completed', 'no-show')
MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 500
MAX_REVIEW_LENGTH = 1000


def _check_length(value, limit, field):
    if value is not None and len(value) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")


def _conditional_update(db: Session, appointment_id, expected_status, values):
    """Apply values only if the appointment still has expected_status; returns the matched row count."""
    return db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.status == expected_status
    ).update(values, synchronize_session=False)


def set_status(db: Session, appointment_id, actor: Actor, new_status, notes=None, cancellation_reason=None):
    if new_status not in PROVIDER_TARGET_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(PROVIDER_TARGET_STATUSES)}")
    if cancellation_reason is not None and new_status != 'cancelled':
        raise ValidationError("A cancellation reason can only accompany a cancellation")
    _check_length(notes, MAX_NOTES_LENGTH, "Notes")
    _check_length(cancellation_reason, MAX_REASON_LENGTH, "Cancellation reason")

    query = db.query(Appointment).filter(Appointment.id == appointment_id)
    if isinstance(actor, ProviderActor):
        query = query.filter(Appointment.provider_id == actor.provider_id)
    elif not isinstance(actor, AdminActor):
        raise NotFound()

    appointment = query.first()
    if not appointment:
        raise NotFound()

    previous = appointment.status
    if previous not in ACTIVE_STATUSES:
        raise InvalidTransition(f"Appointment is already {previous}")

    values = {Appointment.status: new_status}
    if notes:
        values[Appointment.notes] = notes
    if cancellation_reason:
        values[Appointment.cancellation_reason] = cancellation_reason

    if not _conditional_update(db, appointment.id, previous, values):
        db.rollback()
        raise InvalidTransition("Appointment was modified concurrently")

    if new_status == 'completed':
        db.query(Provider).filter(Provider.id == appointment.provider_id).update(
            {Provider.total_sessions: Provider.total_sessions + 1}, synchronize_session=False)

    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} moved {previous} -> {new_status}")
    return appointment


def cancel(db: Session, appointment_id, client_id, reason=None):
    _check_length(reason, MAX_REASON_LENGTH, "Cancellation reason")

    appointment = db.query(Appointment).filter_by(id=appointment_id, client_id=client_id).first()
    if not appointment:
        raise NotFound()

    previous = appointment.status
    if previous not in ACTIVE_STATUSES:
        raise NotCancellable(f"Appointment is already {previous} and cannot be cancelled")

    values = {Appointment.status: 'cancelled'}
    if reason:
        values[Appointment.cancellation_reason] = reason

    if not _conditional_update(db, appointment.id, previous, values):
        db.rollback()
        raise NotCancellable("Appointment was modified concurrently")

    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} cancelled by client {client_id}")
    return appointment


def validate_rating(rating):
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")


def submit_review(db: Session, appointment_id, client_id, rating, review=None):
    validate_rating(rating)
    _check_length(review, MAX_REVIEW_LENGTH, "Review")

    appointment = db.query(Appointment).filter_by(id=appointment_id, client_id=client_id).first()
    if not appointment:
        raise NotFound()
    if appointment.status != 'completed':
        raise NotReviewable()

    values = {Appointment.rating: rating, Appointment.review: review}
    if not _conditional_update(db, appointment.id, 'completed', values):
        db.rollback()
        raise NotReviewable()

    average = db.query(func.avg(Appointment.rating)).filter(
        Appointment.provider_id == appointment.provider_id,
        Appointment.status == 'completed',
        Appointment.rating.isnot(None)
    ).scalar()
    db.query(Provider).filter(Provider.id == appointment.provider_id).update(
        {Provider.rating: round(float(average or 0), 2)}, synchronize_session=False)

    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} reviewed by client {client_id} with rating {rating}")
    return appointment
