# consultbook/db/models/blocked_period.py

from __future__ import annotations
import uuid
import datetime as _dt
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from consultbook.db.session import Base
from consultbook.db.types import UTCDateTime, utcnow

APPOINTMENT_REASON = "APPOINTMENT"


class BlockedPeriod(Base):
    __tablename__ = "blocked_periods"
    __table_args__ = (
        sa.Index("ix_blocked_periods_date", "date"),
        sa.Index("ix_blocked_periods_start_end", "start_at", "end_at"),
        sa.Index("ix_blocked_periods_appointment_id", "appointment_id"),
        sa.CheckConstraint("start_at < end_at", name="ck_blocked_periods_start_before_end"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Local calendar date the block was created for; used for indexing and listing
    date: Mapped[_dt.date] = mapped_column(sa.Date, nullable=False)
    # Canonical interval: absolute UTC instants, half-open [start_at, end_at)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    reason: Mapped[str] = mapped_column(sa.String(64), nullable=False)  # APPOINTMENT, VACATION, MEETING, ...
    # null if blocked by admin
    appointment_id: Mapped[Optional[str]] = mapped_column(
        sa.String(36), sa.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.String(500))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def is_appointment_derived(self) -> bool:
        return self.appointment_id is not None
