# consultbook/api/routes/appointments.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from consultbook.api.deps import get_appointment_service, require_admin
from consultbook.db.models.appointment import AppointmentStatus
from consultbook.schemas.appointment import (
    AppointmentCreate,
    AppointmentOut,
    AppointmentUpdate,
    PaymentConfirmation,
)
from consultbook.schemas.document import DocumentCreate, DocumentOut
from consultbook.services.appointments import AppointmentService

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.create_appointment(payload)


@router.get("", response_model=List[AppointmentOut], dependencies=[Depends(require_admin)])
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    service: AppointmentService = Depends(get_appointment_service),
):
    if status_filter is not None:
        return await service.list_by_status(status_filter)
    return await service.list_all()


@router.get("/upcoming", response_model=List[AppointmentOut], dependencies=[Depends(require_admin)])
async def list_upcoming(service: AppointmentService = Depends(get_appointment_service)):
    return await service.list_upcoming()


@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(appointment_id: str, service: AppointmentService = Depends(get_appointment_service)):
    return await service.get_by_id(appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentOut, dependencies=[Depends(require_admin)])
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.update(appointment_id, payload)


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_appointment(appointment_id: str, service: AppointmentService = Depends(get_appointment_service)):
    return await service.cancel_appointment(appointment_id)


@router.post(
    "/{appointment_id}/confirm-payment",
    response_model=AppointmentOut,
    dependencies=[Depends(require_admin)],
)
async def confirm_payment(
    appointment_id: str,
    payload: PaymentConfirmation,
    service: AppointmentService = Depends(get_appointment_service),
):
    """Called by the payment collaborator once the charge has succeeded."""
    return await service.confirm_payment(appointment_id, payload.payment_reference)


# ---------- Documents ----------

@router.post(
    "/{appointment_id}/documents",
    response_model=DocumentOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_document(
    appointment_id: str,
    payload: DocumentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.record_document(appointment_id, payload)


@router.get("/{appointment_id}/documents", response_model=List[DocumentOut], dependencies=[Depends(require_admin)])
async def list_documents(appointment_id: str, service: AppointmentService = Depends(get_appointment_service)):
    return await service.list_documents(appointment_id)
