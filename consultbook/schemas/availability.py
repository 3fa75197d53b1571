# consultbook/schemas/availability.py

from datetime import date as _Date, datetime as _Datetime, time as _Time
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlockPeriodRequest(BaseModel):
    """Admin request to block time on one day or on every day of a range.

    Ordering, timezone and range-size rules are enforced by the availability
    service so they surface as business errors rather than schema errors.
    """

    date: _Date
    end_date: Optional[_Date] = Field(None, description="Inclusive last day when blocking a range")
    start_time: Optional[_Time] = None
    end_time: Optional[_Time] = None
    full_day: bool = False
    reason: str = Field(..., max_length=64, examples=["VACATION"])
    notes: Optional[str] = Field(None, max_length=500)
    timezone: Optional[str] = Field(None, description="IANA timezone of date/start_time/end_time")


class BlockedPeriodOut(BaseModel):
    id: str
    date: _Date
    start_at: _Datetime
    end_at: _Datetime
    reason: str
    notes: Optional[str] = None
    appointment_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TimeSlotAvailability(BaseModel):
    start_time: _Time
    available_30: bool
    available_60: bool
    available_90: bool

    @property
    def any_available(self) -> bool:
        return self.available_30 or self.available_60 or self.available_90


class DayAvailability(BaseModel):
    date: _Date
    timezone: str
    slots: List[TimeSlotAvailability]
    fully_booked: bool


class MonthAvailability(BaseModel):
    year: int
    month: int
    timezone: str
    day_availability: Dict[int, bool]


class AvailabilityCheck(BaseModel):
    start: _Datetime
    duration: int
    available: bool


class TimezoneOptionOut(BaseModel):
    id: str
    display_name: str
