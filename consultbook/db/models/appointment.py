# consultbook/db/models/appointment.py

from __future__ import annotations
import enum
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from consultbook.db.session import Base
from consultbook.db.types import UTCDateTime, utcnow


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"        # just created, awaiting payment
    CONFIRMED = "CONFIRMED"    # payment successful
    CANCELLED = "CANCELLED"    # cancelled by client or admin
    COMPLETED = "COMPLETED"    # appointment finished
    NO_SHOW = "NO_SHOW"        # client didn't show up


ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.NO_SHOW: set(),
}

ALLOWED_DURATIONS = (30, 60, 90)
SUPPORTED_CURRENCIES = ("CAD", "MAD")


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _uuid() -> str:
    return str(uuid.uuid4())


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        sa.Index("ix_appointments_appointment_date", "appointment_date"),
        sa.Index("ix_appointments_email_status", "email", "status"),
        sa.Index("ix_appointments_status", "status"),
        # At most one PENDING appointment per email
        sa.Index(
            "uq_appointments_pending_email",
            "email",
            unique=True,
            postgresql_where=sa.text("status = 'PENDING'"),
            sqlite_where=sa.text("status = 'PENDING'"),
        ),
        sa.CheckConstraint("duration IN (30, 60, 90)", name="ck_appointments_duration"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=_uuid)

    # Client information (no account needed)
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    phone: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    country: Mapped[str] = mapped_column(sa.String(100), nullable=False)

    # Stored as timezone-aware UTC; user_timezone is for display only
    appointment_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    user_timezone: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    duration: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    consultation_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    client_presentation: Mapped[Optional[str]] = mapped_column(sa.String(1000))

    # Payment
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        sa.Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=16),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )

    admin_notes: Mapped[Optional[str]] = mapped_column(sa.String(1000))
    reminder_sent: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def ends_at(self) -> datetime:
        return self.appointment_date + timedelta(minutes=self.duration)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def touch(self) -> None:
        self.updated_at = utcnow()
