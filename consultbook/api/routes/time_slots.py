# consultbook/api/routes/time_slots.py
from __future__ import annotations

from datetime import date
from typing import List

from fastapi import APIRouter, Depends

from consultbook.api.deps import get_time_slot_service, require_admin
from consultbook.schemas.time_slot import GenerateTimeSlotsRequest, TimeSlotOut
from consultbook.services.time_slots import TimeSlotService

router = APIRouter(prefix="/time-slots", tags=["time-slots"])


@router.get("/available", response_model=List[TimeSlotOut])
async def available_slots(day: date, service: TimeSlotService = Depends(get_time_slot_service)):
    return await service.get_available_slots(day)


@router.post("/generate", dependencies=[Depends(require_admin)])
async def generate_slots(payload: GenerateTimeSlotsRequest, service: TimeSlotService = Depends(get_time_slot_service)):
    created = await service.generate_slots(payload.start_date, payload.end_date, payload.slot_duration)
    return {"created": created}


@router.post("/{slot_id}/block", response_model=TimeSlotOut, dependencies=[Depends(require_admin)])
async def block_slot(slot_id: str, service: TimeSlotService = Depends(get_time_slot_service)):
    return await service.block_slot(slot_id)


@router.post("/{slot_id}/unblock", response_model=TimeSlotOut, dependencies=[Depends(require_admin)])
async def unblock_slot(slot_id: str, service: TimeSlotService = Depends(get_time_slot_service)):
    return await service.unblock_slot(slot_id)
