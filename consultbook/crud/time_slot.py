# consultbook/crud/time_slot.py

from __future__ import annotations
from datetime import date, time
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.db.models.time_slot import TimeSlot


async def get_time_slot_by_id(db: AsyncSession, slot_id: str) -> Optional[TimeSlot]:
    return await db.get(TimeSlot, slot_id)


async def exists_by_date_and_start_time(db: AsyncSession, day: date, start_time: time) -> bool:
    q = sa.select(sa.exists().where(TimeSlot.date == day, TimeSlot.start_time == start_time))
    res = await db.execute(q)
    return bool(res.scalar())


async def existing_start_times(db: AsyncSession, day: date) -> set[time]:
    res = await db.execute(sa.select(TimeSlot.start_time).where(TimeSlot.date == day))
    return set(res.scalars().all())


async def list_available_for_date(db: AsyncSession, day: date) -> Sequence[TimeSlot]:
    q = (
        sa.select(TimeSlot)
        .where(TimeSlot.date == day, TimeSlot.available.is_(True))
        .order_by(TimeSlot.start_time.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def save_time_slots(db: AsyncSession, slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    slots = list(slots)
    db.add_all(slots)
    await db.flush()
    return slots
