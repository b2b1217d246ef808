from datetime import date as date_type, timedelta
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Body, Query, Depends
from pydantic import BaseModel, Field
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import analytics as analytics_service
from .auth import Actor, AdminActor, ClientActor, ProviderActor, get_current_actor, role_required
from .booking import book
from .dependencies import get_clock, get_db, get_redis_client, UserRole, SLOT_MINUTES
from .errors import NotFound, SchedulingError
from .lifecycle import cancel, set_status, submit_review
from .models import Appointment, Provider
from .slots import available_slots, get_cached_slots, invalidate_slots, replace_availability
from .utils import serialize_appointment
import logging

router = APIRouter()


class BookAppointmentRequest(BaseModel):
    provider_id: int
    date: date_type
    start_time: str
    duration: int
    session_type: str = 'individual'
    session_mode: str = 'video'
    notes: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None


class CancelAppointmentRequest(BaseModel):
    reason: Optional[str] = None


class ReviewRequest(BaseModel):
    rating: int
    review: Optional[str] = None


class AvailabilityEntry(BaseModel):
    day: str
    start_time: str
    end_time: str
    is_available: bool = True


class AvailabilityRequest(BaseModel):
    availability: List[AvailabilityEntry] = Field(default_factory=list)


def http_error(error: SchedulingError):
    return HTTPException(status_code=error.status_code, detail=error.message)


def store_error(db: Session, context, error: SQLAlchemyError):
    db.rollback()
    logging.error(f"Error in {context}: {str(error)}")
    return HTTPException(status_code=500, detail=f"An error occurred in {context}")


def drop_cached_slots(redis_client, provider_id, day=None):
    try:
        invalidate_slots(redis_client, provider_id, day)
    except RedisError as e:
        logging.warning(f"Could not invalidate cached slots for provider {provider_id}: {str(e)}")


def require_self_or_admin(actor: Actor, provider_id: int):
    if isinstance(actor, AdminActor):
        return
    if not isinstance(actor, ProviderActor) or actor.provider_id != provider_id:
        raise HTTPException(status_code=403, detail="Not authorized for this provider")


@router.post('/appointments/book', status_code=201)
def book_appointment(
        request: BookAppointmentRequest,
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis_client),
        actor: ClientActor = Depends(role_required(UserRole.CLIENT, admit_admin=False))
):
    try:
        appointment = book(
            db,
            client_id=actor.client_id,
            provider_id=request.provider_id,
            date=request.date,
            start_time=request.start_time,
            duration=request.duration,
            session_type=request.session_type,
            session_mode=request.session_mode,
            notes=request.notes
        )
    except SchedulingError as e:
        logging.info(f"Booking rejected for client {actor.client_id}: {e.message}")
        raise http_error(e)

    drop_cached_slots(redis_client, appointment.provider_id, appointment.date)
    return {"message": "Appointment booked successfully",
            "appointment": serialize_appointment(appointment, include_provider=True)}


@router.get('/providers/me/dashboard')
def provider_dashboard(
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        actor: ProviderActor = Depends(role_required(UserRole.PROVIDER, admit_admin=False))
):
    return analytics_service.dashboard(db, actor.provider_id, clock())


@router.get('/providers/me/analytics')
def provider_analytics(
        period: str = Query('month'),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        actor: ProviderActor = Depends(role_required(UserRole.PROVIDER, admit_admin=False))
):
    scope = analytics_service.ProviderScope(actor.provider_id)
    return analytics_service.analytics(db, scope, period, clock())


@router.get('/providers/{provider_id}/available-slots')
def get_available_slots(
        provider_id: int,
        date: date_type = Query(...),
        slot_minutes: int = Query(SLOT_MINUTES, ge=15, le=180),
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis_client),
        actor: Actor = Depends(get_current_actor)
):
    try:
        try:
            slots = get_cached_slots(db, redis_client, provider_id, date, slot_minutes)
        except RedisError as e:
            logging.warning(f"Slot cache unavailable for provider {provider_id}, computing from database: {str(e)}")
            slots = [slot._asdict() for slot in available_slots(db, provider_id, date, slot_minutes)]
    except SchedulingError as e:
        raise http_error(e)
    return {"date": date.isoformat(), "availableSlots": slots}


@router.put('/providers/{provider_id}/availability')
def set_provider_availability(
        provider_id: int,
        request: AvailabilityRequest = Body(...),
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis_client),
        actor: Actor = Depends(role_required(UserRole.PROVIDER))
):
    logging.info(f"Setting availability for provider {provider_id}")
    require_self_or_admin(actor, provider_id)

    try:
        windows = replace_availability(db, provider_id, [entry.model_dump() for entry in request.availability])
    except SchedulingError as e:
        db.rollback()
        raise http_error(e)
    except SQLAlchemyError as e:
        raise store_error(db, "set_provider_availability", e)

    drop_cached_slots(redis_client, provider_id)
    return {
        "message": "Availability set successfully",
        "availability": [
            {"day": w.day, "start_time": w.start_time, "end_time": w.end_time, "is_available": w.is_available}
            for w in windows
        ]
    }


@router.get('/providers/{provider_id}/booked-appointments')
def get_booked_appointments(
        provider_id: int,
        start_date: Optional[date_type] = Query(None),
        end_date: Optional[date_type] = Query(None),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        actor: Actor = Depends(role_required(UserRole.PROVIDER))
):
    require_self_or_admin(actor, provider_id)

    provider = db.query(Provider).filter_by(id=provider_id).first()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")

    start_date = start_date or clock().date()
    end_date = end_date or start_date + timedelta(weeks=1)

    booked = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.date >= start_date,
        Appointment.date <= end_date
    ).order_by(Appointment.date, Appointment.start_time).all()

    return [serialize_appointment(appointment) for appointment in booked]


@router.get('/appointments/{appointment_id}')
def get_appointment(
        appointment_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor)
):
    query = db.query(Appointment).filter(Appointment.id == appointment_id)
    if isinstance(actor, ClientActor):
        query = query.filter(Appointment.client_id == actor.client_id)
    elif isinstance(actor, ProviderActor):
        query = query.filter(Appointment.provider_id == actor.provider_id)

    appointment = query.first()
    if not appointment:
        raise http_error(NotFound())
    return {"appointment": serialize_appointment(appointment, include_provider=True)}


@router.put('/appointments/{appointment_id}/status')
def update_appointment_status(
        appointment_id: int,
        request: UpdateStatusRequest,
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis_client),
        actor: Actor = Depends(role_required(UserRole.PROVIDER))
):
    try:
        appointment = set_status(db, appointment_id, actor, request.status,
                                 notes=request.notes, cancellation_reason=request.cancellation_reason)
    except SchedulingError as e:
        raise http_error(e)
    except SQLAlchemyError as e:
        raise store_error(db, "update_appointment_status", e)

    drop_cached_slots(redis_client, appointment.provider_id, appointment.date)
    return {"message": "Appointment status updated successfully",
            "appointment": serialize_appointment(appointment)}


@router.put('/appointments/{appointment_id}/cancel')
def cancel_appointment(
        appointment_id: int,
        request: Optional[CancelAppointmentRequest] = None,
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis_client),
        actor: ClientActor = Depends(role_required(UserRole.CLIENT, admit_admin=False))
):
    try:
        appointment = cancel(db, appointment_id, actor.client_id, reason=request.reason if request else None)
    except SchedulingError as e:
        raise http_error(e)
    except SQLAlchemyError as e:
        raise store_error(db, "cancel_appointment", e)

    drop_cached_slots(redis_client, appointment.provider_id, appointment.date)
    return {"message": "Appointment cancelled successfully",
            "appointment": serialize_appointment(appointment, include_provider=True)}


@router.post('/appointments/{appointment_id}/review')
def review_appointment(
        appointment_id: int,
        request: ReviewRequest,
        db: Session = Depends(get_db),
        actor: ClientActor = Depends(role_required(UserRole.CLIENT, admit_admin=False))
):
    try:
        appointment = submit_review(db, appointment_id, actor.client_id, request.rating, request.review)
    except SchedulingError as e:
        raise http_error(e)
    except SQLAlchemyError as e:
        raise store_error(db, "review_appointment", e)
    return {"message": "Review submitted successfully", "appointment": serialize_appointment(appointment)}


@router.get('/admin/analytics')
def admin_analytics(
        period: str = Query('month'),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        actor: AdminActor = Depends(role_required(UserRole.ADMIN))
):
    logging.info(f"Platform analytics ({period}) requested by admin {actor.admin_id}")
    return analytics_service.analytics(db, analytics_service.PlatformScope(), period, clock())


@router.put('/admin/providers/{provider_id}/verify')
def verify_provider(
        provider_id: int,
        db: Session = Depends(get_db),
        actor: AdminActor = Depends(role_required(UserRole.ADMIN))
):
    provider = db.query(Provider).filter_by(id=provider_id).first()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    provider.is_verified = True
    try:
        db.commit()
    except SQLAlchemyError as e:
        raise store_error(db, "verify_provider", e)
    logging.info(f"Provider {provider_id} verified by admin {actor.admin_id}")
    return {"id": provider.id, "is_verified": provider.is_verified, "is_active": provider.is_active}


@router.put('/admin/providers/{provider_id}/toggle-status')
def toggle_provider_status(
        provider_id: int,
        db: Session = Depends(get_db),
        actor: AdminActor = Depends(role_required(UserRole.ADMIN))
):
    provider = db.query(Provider).filter_by(id=provider_id).first()
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    provider.is_active = not provider.is_active
    try:
        db.commit()
    except SQLAlchemyError as e:
        raise store_error(db, "toggle_provider_status", e)
    logging.info(f"Provider {provider_id} is_active={provider.is_active} set by admin {actor.admin_id}")
    return {"id": provider.id, "is_verified": provider.is_verified, "is_active": provider.is_active}
