# consultbook/api/routes/availability.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from consultbook.api.deps import get_availability_service, require_admin
from consultbook.core.errors import InvalidRequestError
from consultbook.core.timezones import COMMON_TIMEZONES
from consultbook.schemas.availability import (
    AvailabilityCheck,
    BlockedPeriodOut,
    BlockPeriodRequest,
    DayAvailability,
    MonthAvailability,
    TimezoneOptionOut,
)
from consultbook.services.availability import AvailabilityService

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/check", response_model=AvailabilityCheck)
async def check_availability(
    start: datetime = Query(..., description="ISO8601 instant with offset"),
    duration: int = Query(..., gt=0),
    service: AvailabilityService = Depends(get_availability_service),
):
    if start.tzinfo is None:
        raise InvalidRequestError("Start must include a timezone offset")
    available = await service.is_available(start, duration)
    return AvailabilityCheck(start=start, duration=duration, available=available)


@router.get("/day/{day}", response_model=DayAvailability)
async def day_availability(
    day: date,
    timezone: Optional[str] = None,
    service: AvailabilityService = Depends(get_availability_service),
):
    return await service.day_availability(day, timezone)


@router.get("/month/{year}/{month}", response_model=MonthAvailability)
async def month_availability(
    year: int,
    month: int,
    timezone: Optional[str] = None,
    service: AvailabilityService = Depends(get_availability_service),
):
    return await service.month_availability(year, month, timezone)


@router.get("/timezones", response_model=List[TimezoneOptionOut])
async def list_timezones():
    return [TimezoneOptionOut(id=opt.id, display_name=opt.display_name) for opt in COMMON_TIMEZONES]


# ---------- Admin ----------

@router.post(
    "/block",
    response_model=List[BlockedPeriodOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def block_period(
    payload: BlockPeriodRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    periods = await service.block_period(payload)
    return [BlockedPeriodOut.model_validate(p) for p in periods]


@router.delete(
    "/block/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def unblock_period(period_id: str, service: AvailabilityService = Depends(get_availability_service)):
    await service.unblock_period(period_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/blocked", response_model=List[BlockedPeriodOut], dependencies=[Depends(require_admin)])
async def list_blocked_periods(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: AvailabilityService = Depends(get_availability_service),
):
    return await service.list_blocked_periods(start_date, end_date)
