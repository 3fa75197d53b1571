"""initial booking schema: appointments, blocked periods, time slots, documents

Revision ID: booking_schema_001
Revises:
Create Date: 2025-03-01 00:00:01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'booking_schema_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'appointments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('appointment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_timezone', sa.String(64), nullable=False),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('consultation_type', sa.String(100), nullable=False),
        sa.Column('client_presentation', sa.String(1000)),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('payment_intent_id', sa.String(255), unique=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('admin_notes', sa.String(1000)),
        sa.Column('reminder_sent', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('reminder_sent_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('duration IN (30, 60, 90)', name='ck_appointments_duration'),
    )
    op.create_index('ix_appointments_appointment_date', 'appointments', ['appointment_date'])
    op.create_index('ix_appointments_email_status', 'appointments', ['email', 'status'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    # At most one PENDING appointment per email
    op.create_index(
        'uq_appointments_pending_email', 'appointments', ['email'], unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        'blocked_periods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(64), nullable=False),
        sa.Column('appointment_id', sa.String(36), sa.ForeignKey('appointments.id', ondelete='CASCADE')),
        sa.Column('notes', sa.String(500)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('start_at < end_at', name='ck_blocked_periods_start_before_end'),
    )
    op.create_index('ix_blocked_periods_date', 'blocked_periods', ['date'])
    op.create_index('ix_blocked_periods_start_end', 'blocked_periods', ['start_at', 'end_at'])
    op.create_index('ix_blocked_periods_appointment_id', 'blocked_periods', ['appointment_id'])

    op.create_table(
        'time_slots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('available', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('appointment_id', sa.String(36), sa.ForeignKey('appointments.id', ondelete='SET NULL'),
                  unique=True),
        sa.UniqueConstraint('date', 'start_time', name='uq_time_slots_date_start_time'),
    )
    op.create_index('ix_time_slots_date_available', 'time_slots', ['date', 'available'])

    op.create_table(
        'documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('appointment_id', sa.String(36), sa.ForeignKey('appointments.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('storage_url', sa.String(1024), nullable=False),
        sa.Column('size_bytes', sa.BigInteger, nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_documents_appointment_id', 'documents', ['appointment_id'])


def downgrade() -> None:
    op.drop_index('ix_documents_appointment_id', table_name='documents')
    op.drop_table('documents')
    op.drop_index('ix_time_slots_date_available', table_name='time_slots')
    op.drop_table('time_slots')
    op.drop_index('ix_blocked_periods_appointment_id', table_name='blocked_periods')
    op.drop_index('ix_blocked_periods_start_end', table_name='blocked_periods')
    op.drop_index('ix_blocked_periods_date', table_name='blocked_periods')
    op.drop_table('blocked_periods')
    op.drop_index('uq_appointments_pending_email', table_name='appointments')
    op.drop_index('ix_appointments_status', table_name='appointments')
    op.drop_index('ix_appointments_email_status', table_name='appointments')
    op.drop_index('ix_appointments_appointment_date', table_name='appointments')
    op.drop_table('appointments')
