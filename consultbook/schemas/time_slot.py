# consultbook/schemas/time_slot.py

from datetime import date as _Date, time as _Time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateTimeSlotsRequest(BaseModel):
    start_date: _Date
    end_date: _Date
    slot_duration: int = Field(30, gt=0, le=180)


class TimeSlotOut(BaseModel):
    id: str
    date: _Date
    start_time: _Time
    end_time: _Time
    available: bool
    appointment_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

