"""Initial scheduling schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates clients, providers, availability templates and the appointment ledger.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_clients_id', 'clients', ['id'])

    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('specializations', sa.JSON(), nullable=False),
        sa.Column('hourly_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('hourly_rate >= 0', name='ck_provider_hourly_rate'),
    )
    op.create_index('ix_providers_id', 'providers', ['id'])

    op.create_table(
        'availability_windows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('day', sa.String(9), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_availability_windows_id', 'availability_windows', ['id'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='pending'),
        sa.Column('session_type', sa.String(10), nullable=False, server_default='individual'),
        sa.Column('session_mode', sa.String(10), nullable=False, server_default='video'),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('review', sa.Text(), nullable=True),
        sa.Column('payment_status', sa.String(10), nullable=False, server_default='pending'),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('meeting_link', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('duration >= 30 AND duration <= 180', name='ck_appointment_duration'),
        sa.CheckConstraint('amount >= 0', name='ck_appointment_amount'),
        sa.CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='ck_appointment_rating'),
        sa.CheckConstraint('start_time < end_time', name='ck_appointment_interval'),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('idx_appointment_provider_date', 'appointments', ['provider_id', 'date'])
    op.create_index('idx_appointment_client_date', 'appointments', ['client_id', 'date'])
    op.create_index('idx_appointment_status_date', 'appointments', ['status', 'date'])


def downgrade() -> None:
    op.drop_table('appointments')
    op.drop_table('availability_windows')
    op.drop_table('providers')
    op.drop_table('clients')
