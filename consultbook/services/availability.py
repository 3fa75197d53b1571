"""Availability engine.

Decides whether a time range is bookable, builds the 48-slot day grid and the
month overview, and keeps blocked periods in step with appointments.

Blocked periods are stored as absolute UTC instants. Local time-of-day only
appears here, at the presentation boundary: day and month views convert each
period into minutes-of-day in the requested display timezone.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.config import settings
from consultbook.core.errors import BusinessRuleViolation, InvalidRequestError, NotFoundError
from consultbook.core.intervals import Interval, merge_intervals, overlaps, total_covered_minutes
from consultbook.core.logging import get_logger
from consultbook.core.timezones import local_day_bounds, local_to_utc, resolve_timezone, to_utc
from consultbook.crud import blocked_period as store
from consultbook.crud.appointment import get_appointment_by_id
from consultbook.db.models.blocked_period import APPOINTMENT_REASON, BlockedPeriod
from consultbook.schemas.availability import (
    BlockPeriodRequest,
    BlockedPeriodOut,
    DayAvailability,
    MonthAvailability,
    TimeSlotAvailability,
)

logger = get_logger(__name__)

SLOT_MINUTES = 30
SLOTS_PER_DAY = 48
SLOT_DURATIONS = (30, 60, 90)
MINUTES_PER_DAY = 24 * 60
# 23.5 hours: a day is "whole" once only the last 30-minute boundary could remain
FULLY_BLOCKED_MINUTES = 1410
MAX_BLOCK_RANGE_DAYS = 365
MIN_YEAR = 2
MAX_YEAR = 9998
FULL_DAY_START = time(0, 0)
FULL_DAY_END = time(23, 59)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def minutes_of_day(period: BlockedPeriod, day: date, tz: ZoneInfo) -> Optional[Interval]:
    """Clip a stored period to ``day`` in ``tz`` and express it as minutes since local midnight.

    Returns None when the period does not touch that local day.
    """
    local_start = period.start_at.astimezone(tz)
    local_end = period.end_at.astimezone(tz)

    if local_start.date() > day or local_end.date() < day:
        return None

    # Start rounds down and end rounds up so a partial minute still blocks the grid
    start = 0 if local_start.date() < day else local_start.hour * 60 + local_start.minute
    if local_end.date() > day:
        end = MINUTES_PER_DAY
    else:
        end = local_end.hour * 60 + local_end.minute
        if local_end.second or local_end.microsecond:
            end += 1
    if start >= end:
        return None
    return Interval(start, end)


def is_slot_free(start_minute: int, duration: int, blocked: Iterable[Interval]) -> bool:
    end_minute = start_minute + duration
    # Never wrap past midnight
    if end_minute > MINUTES_PER_DAY or end_minute <= start_minute:
        return False
    return not any(overlaps(start_minute, end_minute, b.start, b.end) for b in blocked)


class AvailabilityService:
    """Availability queries and blocked-period management over one session."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Optional[Clock] = None,
        default_timezone: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock or _utcnow
        self.default_timezone = default_timezone or settings.BUSINESS_TIMEZONE

    def now(self) -> datetime:
        return to_utc(self.clock())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def is_available(
        self,
        start_at: datetime,
        duration_minutes: int,
        *,
        ignore_appointment_id: Optional[str] = None,
    ) -> bool:
        """True iff ``[start_at, start_at + duration)`` is in the future and free.

        Fails closed: a start that is not strictly after now is never available.
        """
        start_utc = to_utc(start_at)
        if start_utc <= self.now():
            return False
        if duration_minutes <= 0:
            return False

        end_utc = start_utc + timedelta(minutes=duration_minutes)
        conflicts = await store.find_by_instant_range(
            self.db, start_utc, end_utc, exclude_appointment_id=ignore_appointment_id
        )
        if conflicts:
            logger.debug(
                "time_not_available",
                start=start_utc.isoformat(),
                duration=duration_minutes,
                conflicts=[p.id for p in conflicts],
            )
        return not conflicts

    async def day_availability(self, day: date, tz_name: Optional[str] = None) -> DayAvailability:
        tz_name = tz_name or self.default_timezone
        tz = resolve_timezone(tz_name)
        if not MIN_YEAR <= day.year <= MAX_YEAR:
            raise InvalidRequestError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")

        # Fetch the day's blocked periods once
        day_start, day_end = local_day_bounds(day, tz)
        periods = await store.find_by_instant_range(self.db, day_start, day_end)
        blocked = [iv for iv in (minutes_of_day(p, day, tz) for p in periods) if iv is not None]

        slots: List[TimeSlotAvailability] = []
        for index in range(SLOTS_PER_DAY):
            start_minute = index * SLOT_MINUTES
            free = {d: is_slot_free(start_minute, d, blocked) for d in SLOT_DURATIONS}
            slots.append(
                TimeSlotAvailability(
                    start_time=time(start_minute // 60, start_minute % 60),
                    available_30=free[30],
                    available_60=free[60],
                    available_90=free[90],
                )
            )

        fully_booked = not any(s.any_available for s in slots)
        logger.debug("day_availability", date=day.isoformat(), timezone=tz_name,
                     blocked=len(blocked), fully_booked=fully_booked)
        return DayAvailability(date=day, timezone=tz_name, slots=slots, fully_booked=fully_booked)

    async def month_availability(self, year: int, month: int, tz_name: Optional[str] = None) -> MonthAvailability:
        tz_name = tz_name or self.default_timezone
        tz = resolve_timezone(tz_name)
        if not 1 <= month <= 12:
            raise InvalidRequestError("Month must be between 1 and 12")
        # Keeps the neighbouring UTC days representable
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise InvalidRequestError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")

        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        today = self.now().astimezone(tz).date()

        # One query for the whole month, grouped by local date
        range_start, _ = local_day_bounds(first_day, tz)
        _, range_end = local_day_bounds(last_day, tz)
        periods = await store.find_by_instant_range(self.db, range_start, range_end)

        blocked_by_day: Dict[date, List[Interval]] = defaultdict(list)
        for period in periods:
            local_first = max(period.start_at.astimezone(tz).date(), first_day)
            local_last = min(period.end_at.astimezone(tz).date(), last_day)
            day = local_first
            while day <= local_last:
                iv = minutes_of_day(period, day, tz)
                if iv is not None:
                    blocked_by_day[day].append(iv)
                day += timedelta(days=1)

        availability: Dict[int, bool] = {}
        day = first_day
        while day <= last_day:
            if day < today:
                availability[day.day] = False
            else:
                availability[day.day] = self._has_any_availability(blocked_by_day.get(day, []))
            day += timedelta(days=1)

        return MonthAvailability(year=year, month=month, timezone=tz_name, day_availability=availability)

    @staticmethod
    def _has_any_availability(blocked: Sequence[Interval]) -> bool:
        if not blocked:
            return True
        covered = total_covered_minutes(merge_intervals(blocked))
        return covered < FULLY_BLOCKED_MINUTES

    async def list_blocked_periods(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[BlockedPeriodOut]:
        if start_date is not None and start_date == end_date:
            periods = await store.find_by_date(self.db, start_date)
        elif start_date is not None and end_date is not None:
            periods = await store.find_by_date_range(self.db, start_date, end_date)
        elif start_date is not None:
            periods = await store.find_from_date(self.db, start_date)
        elif end_date is not None:
            periods = await store.find_until_date(self.db, end_date)
        else:
            periods = await store.find_all(self.db)
        return [BlockedPeriodOut.model_validate(p) for p in periods]

    # ------------------------------------------------------------------
    # Admin blocking
    # ------------------------------------------------------------------

    async def block_period(self, request: BlockPeriodRequest) -> List[BlockedPeriod]:
        """Create one blocked period, or one per day of ``date..end_date``, in one transaction."""
        reason = (request.reason or "").strip()
        if not reason:
            raise InvalidRequestError("Reason is required")
        if reason.upper() == APPOINTMENT_REASON:
            raise InvalidRequestError("Reason APPOINTMENT is reserved for booked appointments")

        tz_name = request.timezone or self.default_timezone
        tz = resolve_timezone(tz_name)

        if request.full_day:
            start_time, end_time = FULL_DAY_START, FULL_DAY_END
        else:
            if request.start_time is None or request.end_time is None:
                raise InvalidRequestError("Start time and end time are required unless blocking a full day")
            start_time, end_time = request.start_time, request.end_time
            if start_time >= end_time:
                raise InvalidRequestError("Start time must be before end time")

        last_day = request.end_date or request.date
        if last_day < request.date:
            raise InvalidRequestError("End date must not be before start date")
        span_days = (last_day - request.date).days + 1
        if span_days > MAX_BLOCK_RANGE_DAYS:
            raise InvalidRequestError(f"Cannot block more than {MAX_BLOCK_RANGE_DAYS} days at once")

        periods: List[BlockedPeriod] = []
        day = request.date
        while day <= last_day:
            start_at = local_to_utc(day, start_time, tz)
            end_at = local_to_utc(day, end_time, tz)
            if start_at >= end_at:
                # Only reachable on a DST transition that swallows the whole window
                raise InvalidRequestError(f"Blocked window does not exist on {day} in {tz_name}")
            periods.append(
                BlockedPeriod(
                    date=day,
                    start_at=start_at,
                    end_at=end_at,
                    reason=reason,
                    notes=request.notes,
                )
            )
            day += timedelta(days=1)

        try:
            await store.save_all(self.db, periods)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "blocked_period_created",
            start_date=request.date.isoformat(),
            end_date=last_day.isoformat(),
            count=len(periods),
            full_day=request.full_day,
            reason=reason,
            timezone=tz_name,
        )
        return periods

    async def unblock_period(self, period_id: str) -> None:
        period = await store.find_by_id(self.db, period_id)
        if period is None:
            raise NotFoundError("Blocked period not found")
        if period.is_appointment_derived:
            raise BusinessRuleViolation("Cannot unblock period associated with an appointment")

        await store.delete(self.db, period)
        await self.db.commit()
        logger.info("blocked_period_deleted", period_id=period_id)

    # ------------------------------------------------------------------
    # Appointment-derived blocks (called by the lifecycle manager)
    # ------------------------------------------------------------------

    async def lock_dates(self, start_at: datetime, end_at: datetime) -> None:
        """Serialize bookings touching the same UTC dates until the transaction ends.

        PostgreSQL takes a transaction-scoped advisory lock per date, in date
        order. SQLite already serializes writers, so nothing is needed there.
        """
        bind = self.db.get_bind()
        if bind.dialect.name != "postgresql":
            return
        day = to_utc(start_at).date()
        last = to_utc(end_at).date()
        while day <= last:
            await self.db.execute(sa.text("SELECT pg_advisory_xact_lock(:key)"), {"key": day.toordinal()})
            day += timedelta(days=1)

    async def block_time_for_appointment(
        self,
        appointment_id: str,
        start_at: datetime,
        duration_minutes: int,
        *,
        commit: bool = True,
    ) -> BlockedPeriod:
        appointment = await get_appointment_by_id(self.db, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        if duration_minutes <= 0:
            raise InvalidRequestError("Duration must be positive")

        start_utc = to_utc(start_at)
        end_utc = start_utc + timedelta(minutes=duration_minutes)
        tz = resolve_timezone(appointment.user_timezone)

        period = BlockedPeriod(
            date=start_utc.astimezone(tz).date(),
            start_at=start_utc,
            end_at=end_utc,
            reason=APPOINTMENT_REASON,
            appointment_id=appointment.id,
        )
        await store.save(self.db, period)
        if commit:
            await self.db.commit()

        logger.info(
            "appointment_time_blocked",
            appointment_id=appointment_id,
            start=start_utc.isoformat(),
            end=end_utc.isoformat(),
        )
        return period

    async def free_up_blocked_time_for_appointment(self, appointment_id: str, *, commit: bool = True) -> bool:
        """Delete the appointment's derived period; a missing one is not an error."""
        period = await store.find_appointment_derived_period(self.db, appointment_id)
        if period is None:
            logger.debug("no_blocked_time_for_appointment", appointment_id=appointment_id)
            return False

        await store.delete(self.db, period)
        if commit:
            await self.db.commit()
        logger.info("appointment_time_freed", appointment_id=appointment_id, period_id=period.id)
        return True
