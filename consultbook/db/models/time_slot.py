# consultbook/db/models/time_slot.py

from __future__ import annotations
import uuid
import datetime as _dt
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from consultbook.db.session import Base


class TimeSlot(Base):
    """Pre-materialized bookable slot (legacy grid)."""

    __tablename__ = "time_slots"
    __table_args__ = (
        sa.UniqueConstraint("date", "start_time", name="uq_time_slots_date_start_time"),
        sa.Index("ix_time_slots_date_available", "date", "available"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date: Mapped[_dt.date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[_dt.time] = mapped_column(sa.Time, nullable=False)
    end_time: Mapped[_dt.time] = mapped_column(sa.Time, nullable=False)
    available: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    # Link to appointment when booked
    appointment_id: Mapped[Optional[str]] = mapped_column(
        sa.String(36), sa.ForeignKey("appointments.id", ondelete="SET NULL"), unique=True
    )
