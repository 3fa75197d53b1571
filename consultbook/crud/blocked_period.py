# consultbook/crud/blocked_period.py

from __future__ import annotations
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.timezones import to_utc
from consultbook.db.models.blocked_period import BlockedPeriod

# Writes here flush but never commit: the calling service owns the
# transaction so batches are all-or-nothing.


async def find_by_id(db: AsyncSession, period_id: str) -> Optional[BlockedPeriod]:
    return await db.get(BlockedPeriod, period_id)


async def find_by_date(db: AsyncSession, day: date) -> Sequence[BlockedPeriod]:
    q = sa.select(BlockedPeriod).where(BlockedPeriod.date == day).order_by(BlockedPeriod.start_at.asc())
    res = await db.execute(q)
    return res.scalars().all()


async def find_by_date_range(db: AsyncSession, start: date, end: date) -> Sequence[BlockedPeriod]:
    """Periods whose index date is within ``[start, end]`` (inclusive)."""
    q = (
        sa.select(BlockedPeriod)
        .where(BlockedPeriod.date >= start, BlockedPeriod.date <= end)
        .order_by(BlockedPeriod.date.asc(), BlockedPeriod.start_at.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def find_from_date(db: AsyncSession, start: date) -> Sequence[BlockedPeriod]:
    q = (
        sa.select(BlockedPeriod)
        .where(BlockedPeriod.date >= start)
        .order_by(BlockedPeriod.date.asc(), BlockedPeriod.start_at.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def find_until_date(db: AsyncSession, end: date) -> Sequence[BlockedPeriod]:
    q = (
        sa.select(BlockedPeriod)
        .where(BlockedPeriod.date <= end)
        .order_by(BlockedPeriod.date.asc(), BlockedPeriod.start_at.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def find_all(db: AsyncSession) -> Sequence[BlockedPeriod]:
    q = sa.select(BlockedPeriod).order_by(BlockedPeriod.date.asc(), BlockedPeriod.start_at.asc())
    res = await db.execute(q)
    return res.scalars().all()


async def find_by_instant_range(
    db: AsyncSession,
    start_at: datetime,
    end_at: datetime,
    *,
    exclude_appointment_id: Optional[str] = None,
) -> Sequence[BlockedPeriod]:
    """Periods overlapping the half-open range ``[start_at, end_at)``.

    Strict comparisons: a period ending exactly at ``start_at`` is not returned.
    """
    q = sa.select(BlockedPeriod).where(
        BlockedPeriod.start_at < to_utc(end_at),
        BlockedPeriod.end_at > to_utc(start_at),
    )
    if exclude_appointment_id is not None:
        q = q.where(
            sa.or_(
                BlockedPeriod.appointment_id.is_(None),
                BlockedPeriod.appointment_id != exclude_appointment_id,
            )
        )
    q = q.order_by(BlockedPeriod.start_at.asc())
    res = await db.execute(q)
    return res.scalars().all()


async def find_appointment_derived_period(db: AsyncSession, appointment_id: str) -> Optional[BlockedPeriod]:
    q = sa.select(BlockedPeriod).where(BlockedPeriod.appointment_id == appointment_id).limit(1)
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def save(db: AsyncSession, period: BlockedPeriod) -> BlockedPeriod:
    db.add(period)
    await db.flush()
    return period


async def save_all(db: AsyncSession, periods: Iterable[BlockedPeriod]) -> list[BlockedPeriod]:
    periods = list(periods)
    db.add_all(periods)
    await db.flush()
    return periods


async def delete(db: AsyncSession, period: BlockedPeriod) -> None:
    await db.delete(period)
    await db.flush()
