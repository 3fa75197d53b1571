# consultbook/crud/appointment.py

from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.timezones import to_utc
from consultbook.db.models.appointment import Appointment, AppointmentStatus


async def get_appointment_by_id(db: AsyncSession, appointment_id: str) -> Optional[Appointment]:
    return await db.get(Appointment, appointment_id)


async def exists_by_email_and_status(db: AsyncSession, email: str, status: AppointmentStatus) -> bool:
    q = sa.select(sa.exists().where(Appointment.email == email, Appointment.status == status))
    res = await db.execute(q)
    return bool(res.scalar())


async def save_appointment(db: AsyncSession, appointment: Appointment) -> Appointment:
    db.add(appointment)
    await db.flush()
    return appointment


async def list_appointments(
    db: AsyncSession,
    *,
    status: Optional[AppointmentStatus] = None,
    start_utc: Optional[datetime] = None,
    end_utc: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> Sequence[Appointment]:
    q = sa.select(Appointment)
    if status is not None:
        q = q.where(Appointment.status == status)
    if start_utc is not None:
        q = q.where(Appointment.appointment_date >= to_utc(start_utc))
    if end_utc is not None:
        q = q.where(Appointment.appointment_date < to_utc(end_utc))
    q = q.order_by(Appointment.appointment_date.asc())
    if limit is not None:
        q = q.limit(limit)
    res = await db.execute(q)
    return res.scalars().all()


async def list_reminder_candidates(
    db: AsyncSession,
    *,
    start_utc: datetime,
    end_utc: datetime,
) -> Sequence[Appointment]:
    """CONFIRMED appointments starting in ``[start_utc, end_utc)`` with no reminder sent yet."""
    q = (
        sa.select(Appointment)
        .where(
            Appointment.status == AppointmentStatus.CONFIRMED,
            Appointment.appointment_date >= to_utc(start_utc),
            Appointment.appointment_date < to_utc(end_utc),
            Appointment.reminder_sent.is_(False),
        )
        .order_by(Appointment.appointment_date.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()
