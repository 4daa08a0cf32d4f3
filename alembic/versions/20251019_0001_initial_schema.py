"""initial booking schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
ACTIVE_STATUS_SQL = sa.text("status IN ('pending', 'confirmed')")
BOOKING_STATUSES = ('pending', 'confirmed', 'completed', 'cancelled')
PAYMENT_STATUSES = ('pending', 'completed', 'failed', 'refunded')


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        'clinics',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(160), nullable=False),
        sa.Column('address', sa.String(255)),
        sa.Column('is_active', sa.Boolean, nullable=False),
        _created_at(),
    )
    op.create_table(
        'practitioners',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('full_name', sa.String(120), nullable=False),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('default_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        _created_at(),
    )
    op.create_table(
        'treatment_types',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(120), nullable=False, unique=True),
        sa.Column('default_duration_min', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
    )
    op.create_table(
        'patients',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('full_name', sa.String(120), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(20)),
        sa.Column('is_active', sa.Boolean, nullable=False),
        _created_at(),
    )

    op.create_table(
        'availability_rules',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('practitioner_id', ID, sa.ForeignKey('practitioners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('clinic_id', ID, sa.ForeignKey('clinics.id', ondelete='CASCADE')),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_minute', sa.Integer, nullable=False),
        sa.Column('end_minute', sa.Integer, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day'),
        sa.CheckConstraint('start_minute < end_minute', name='ck_availability_rules_order'),
    )
    op.create_index('ix_availability_rules_practitioner_day', 'availability_rules', ['practitioner_id', 'day_of_week'])

    op.create_table(
        'availability_overrides',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('practitioner_id', ID, sa.ForeignKey('practitioners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('clinic_id', ID, sa.ForeignKey('clinics.id', ondelete='CASCADE')),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False),
        sa.Column('start_minute', sa.Integer),
        sa.Column('end_minute', sa.Integer),
        sa.Column('reason', sa.String(255)),
        _created_at(),
    )
    op.create_index('ix_availability_overrides_practitioner_date', 'availability_overrides', ['practitioner_id', 'date'])

    op.create_table(
        'schedule_locks',
        sa.Column('practitioner_id', ID, sa.ForeignKey('practitioners.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('lock_date', sa.Date, primary_key=True),
        sa.Column('version', sa.Integer, nullable=False),
    )

    op.create_table(
        'bookings',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('reference', sa.String(32), nullable=False, unique=True),
        sa.Column('patient_id', ID, sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('practitioner_id', ID, sa.ForeignKey('practitioners.id'), nullable=False),
        sa.Column('clinic_id', ID, sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('treatment_type_id', ID, sa.ForeignKey('treatment_types.id')),
        sa.Column('appointment_date', sa.Date, nullable=False),
        sa.Column('start_minute', sa.Integer, nullable=False),
        sa.Column('duration_min', sa.Integer, nullable=False, server_default='60'),
        sa.Column(
            'status',
            sa.Enum(*BOOKING_STATUSES, name='booking_status', native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('notes', sa.Text),
        sa.Column('cancellation_reason', sa.Text),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_by', sa.String(64)),
        sa.Column('late_cancellation', sa.Boolean, nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True)),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('duration_min > 0', name='ck_bookings_duration'),
        sa.CheckConstraint('start_minute >= 0 AND start_minute < 1440', name='ck_bookings_start'),
    )
    op.create_index(
        'uq_bookings_active_slot',
        'bookings',
        ['practitioner_id', 'appointment_date', 'start_minute'],
        unique=True,
        postgresql_where=ACTIVE_STATUS_SQL,
        sqlite_where=ACTIVE_STATUS_SQL,
    )
    op.create_index('ix_bookings_practitioner_date', 'bookings', ['practitioner_id', 'appointment_date'])
    op.create_index('ix_bookings_patient_id', 'bookings', ['patient_id'])

    op.create_table(
        'treatment_sessions',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('booking_id', ID, sa.ForeignKey('bookings.id'), nullable=False, unique=True),
        sa.Column('patient_id', ID, sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('practitioner_id', ID, sa.ForeignKey('practitioners.id'), nullable=False),
        sa.Column('clinic_id', ID, sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('session_date', sa.Date, nullable=False),
        sa.Column('duration_min', sa.Integer, nullable=False),
        sa.Column('review_eligible', sa.Boolean, nullable=False),
        _created_at(),
    )

    op.create_table(
        'payments',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('booking_id', ID, sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*PAYMENT_STATUSES, name='payment_status', native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column('provider_reference', sa.String(128)),
        sa.Column('failure_reason', sa.Text),
        sa.Column('settled_at', sa.DateTime(timezone=True)),
        sa.Column('refunded_at', sa.DateTime(timezone=True)),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])

    op.create_table(
        'lifecycle_events',
        sa.Column('id', ID, primary_key=True, autoincrement=True),
        sa.Column('booking_id', ID, sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('from_status', sa.String(16)),
        sa.Column('to_status', sa.String(16)),
        sa.Column('idempotency_key', sa.String(128), nullable=False, unique=True),
        sa.Column('payload', sa.JSON, nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('delivery_status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text),
        sa.Column('delivered_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_lifecycle_events_delivery', 'lifecycle_events', ['delivery_status', 'id'])
    op.create_index('ix_lifecycle_events_booking_id', 'lifecycle_events', ['booking_id'])


def downgrade() -> None:
    op.drop_table('lifecycle_events')
    op.drop_table('payments')
    op.drop_table('treatment_sessions')
    op.drop_table('bookings')
    op.drop_table('schedule_locks')
    op.drop_table('availability_overrides')
    op.drop_table('availability_rules')
    op.drop_table('patients')
    op.drop_table('treatment_types')
    op.drop_table('practitioners')
    op.drop_table('clinics')
