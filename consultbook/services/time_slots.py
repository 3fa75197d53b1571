"""Legacy pre-materialized time-slot grid.

Slots are generated for weekday working bands. The grid is a derived view:
``get_available_slots`` also hides any slot that a blocked period covers, so
it can never offer time the availability engine would refuse.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.config import WorkingBand, settings
from consultbook.core.errors import BusinessRuleViolation, InvalidRequestError, NotFoundError
from consultbook.core.intervals import overlaps
from consultbook.core.logging import get_logger
from consultbook.core.timezones import local_day_bounds, local_to_utc, resolve_timezone
from consultbook.crud import blocked_period as blocked_store
from consultbook.crud import time_slot as slots_crud
from consultbook.db.models.time_slot import TimeSlot

logger = get_logger(__name__)

LAZY_WINDOW_DAYS = 30
DEFAULT_SLOT_MINUTES = 30


def _add_minutes(t: time, minutes: int) -> time:
    return (datetime.combine(date.min, t) + timedelta(minutes=minutes)).time()


def band_starts(band: WorkingBand, duration: int) -> List[time]:
    """Start times of every ``duration`` slot that fits entirely inside the band."""
    starts = []
    band_end = band.end.hour * 60 + band.end.minute
    minute = band.start.hour * 60 + band.start.minute
    while minute + duration <= band_end:
        starts.append(time(minute // 60, minute % 60))
        minute += duration
    return starts


class TimeSlotService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        working_bands: Optional[Sequence[WorkingBand]] = None,
        timezone_name: Optional[str] = None,
    ):
        self.db = db
        self.working_bands = list(working_bands or settings.WORKING_BANDS)
        if not self.working_bands:
            raise InvalidRequestError("At least one working band is required")
        self.timezone_name = timezone_name or settings.BUSINESS_TIMEZONE

    @property
    def morning_start(self) -> time:
        return min(band.start for band in self.working_bands)

    async def generate_slots(self, start_date: date, end_date: date, slot_duration: int = DEFAULT_SLOT_MINUTES) -> int:
        """Create missing weekday slots in ``[start_date, end_date]``; returns how many were created."""
        if end_date < start_date:
            raise InvalidRequestError("End date must not be before start date")
        if slot_duration <= 0:
            raise InvalidRequestError("Slot duration must be positive")

        logger.info("time_slots_generate", start_date=start_date.isoformat(), end_date=end_date.isoformat(),
                    slot_duration=slot_duration)
        created = 0
        day = start_date
        while day <= end_date:
            # Skip weekends
            if day.weekday() < 5:
                created += await self._generate_for_day(day, slot_duration)
            day += timedelta(days=1)
        await self.db.commit()
        return created

    async def _generate_for_day(self, day: date, duration: int) -> int:
        existing = await slots_crud.existing_start_times(self.db, day)
        slots = []
        for band in self.working_bands:
            for start in band_starts(band, duration):
                if start in existing:
                    continue
                existing.add(start)
                slots.append(
                    TimeSlot(
                        date=day,
                        start_time=start,
                        end_time=_add_minutes(start, duration),
                        available=True,
                    )
                )
        if slots:
            await slots_crud.save_time_slots(self.db, slots)
            logger.debug("time_slots_generated", date=day.isoformat(), count=len(slots))
        return len(slots)

    async def get_available_slots(self, day: date) -> List[TimeSlot]:
        # Generate the next 30 days on first access
        if not await slots_crud.exists_by_date_and_start_time(self.db, day, self.morning_start):
            await self.generate_slots(day, day + timedelta(days=LAZY_WINDOW_DAYS), DEFAULT_SLOT_MINUTES)

        slots = await slots_crud.list_available_for_date(self.db, day)
        if not slots:
            return []

        tz = resolve_timezone(self.timezone_name)
        day_start, day_end = local_day_bounds(day, tz)
        periods = await blocked_store.find_by_instant_range(self.db, day_start, day_end)
        if not periods:
            return list(slots)

        free = []
        for slot in slots:
            slot_start = local_to_utc(day, slot.start_time, tz)
            slot_end = local_to_utc(day, slot.end_time, tz)
            if not any(overlaps(slot_start, slot_end, p.start_at, p.end_at) for p in periods):
                free.append(slot)
        return free

    async def _get_or_404(self, slot_id: str) -> TimeSlot:
        slot = await slots_crud.get_time_slot_by_id(self.db, slot_id)
        if slot is None:
            raise NotFoundError("Time slot not found")
        return slot

    async def block_slot(self, slot_id: str) -> TimeSlot:
        slot = await self._get_or_404(slot_id)
        if not slot.available:
            raise BusinessRuleViolation("Time slot is already blocked")
        slot.available = False
        await self.db.commit()
        logger.info("time_slot_blocked", slot_id=slot_id)
        return slot

    async def unblock_slot(self, slot_id: str) -> TimeSlot:
        slot = await self._get_or_404(slot_id)
        slot.available = True
        slot.appointment_id = None
        await self.db.commit()
        logger.info("time_slot_unblocked", slot_id=slot_id)
        return slot
