# models.py
from sqlalchemy import (Column, Integer, String, Date, DateTime, Float, Text, Boolean, JSON, ForeignKey,
                        CheckConstraint, Index)
from sqlalchemy.orm import declarative_base, relationship

from .dependencies import utcnow

Base = declarative_base()

APPOINTMENT_STATUSES = ('pending', 'confirmed', 'cancelled', 'completed', 'no-show')
ACTIVE_STATUSES = ('pending', 'confirmed')
TERMINAL_STATUSES = ('cancelled', 'completed', 'no-show')
SESSION_TYPES = ('individual', 'group', 'couple')
SESSION_MODES = ('video', 'audio', 'chat', 'in-person')
PAYMENT_STATUSES = ('pending', 'paid', 'refunded')
WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class Client(Base):
    __tablename__ = 'clients'
    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    appointments = relationship("Appointment", back_populates="client")


class Provider(Base):
    __tablename__ = 'providers'
    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String, nullable=False, unique=True)
    specializations = Column(JSON, nullable=False, default=list)
    hourly_rate = Column(Float, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    rating = Column(Float, nullable=False, default=0)  # average of reviewed sessions
    total_sessions = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    availability = relationship("AvailabilityWindow", back_populates="provider",
                                cascade="all, delete-orphan", order_by="AvailabilityWindow.position")
    appointments = relationship("Appointment", back_populates="provider")

    __table_args__ = (
        CheckConstraint('hourly_rate >= 0', name='ck_provider_hourly_rate'),
    )


class AvailabilityWindow(Base):
    __tablename__ = 'availability_windows'
    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    day = Column(String(9), nullable=False)  # lowercase weekday name
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    provider = relationship("Provider", back_populates="availability")


class Appointment(Base):
    __tablename__ = 'appointments'
    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM, zero padded
    end_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False)
    status = Column(String(10), nullable=False, default='pending')
    session_type = Column(String(10), nullable=False, default='individual')
    session_mode = Column(String(10), nullable=False, default='video')
    notes = Column(String(1000), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)
    payment_status = Column(String(10), nullable=False, default='pending')
    amount = Column(Float, nullable=False)
    meeting_link = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    client = relationship("Client", back_populates="appointments")
    provider = relationship("Provider", back_populates="appointments")

    __table_args__ = (
        CheckConstraint('duration >= 30 AND duration <= 180', name='ck_appointment_duration'),
        CheckConstraint('amount >= 0', name='ck_appointment_amount'),
        CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='ck_appointment_rating'),
        CheckConstraint('start_time < end_time', name='ck_appointment_interval'),
        Index('idx_appointment_provider_date', 'provider_id', 'date'),
        Index('idx_appointment_client_date', 'client_id', 'date'),
        Index('idx_appointment_status_date', 'status', 'date'),
    )
