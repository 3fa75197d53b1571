"""Appointment lifecycle manager.

State machine: PENDING -> CONFIRMED -> {COMPLETED, NO_SHOW};
PENDING | CONFIRMED -> CANCELLED. Each transition keeps the appointment's
derived blocked period in step through the availability engine.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.config import PricingTable, settings
from consultbook.core.errors import (
    BusinessRuleViolation,
    ErrorSeverity,
    InvalidRequestError,
    NotFoundError,
    log_error,
)
from consultbook.core.logging import get_logger
from consultbook.core.timezones import is_valid_timezone, to_utc
from consultbook.crud import appointment as appointments_crud
from consultbook.crud import document as documents_crud
from consultbook.db.models.appointment import (
    ALLOWED_DURATIONS,
    SUPPORTED_CURRENCIES,
    Appointment,
    AppointmentStatus,
    can_transition,
)
from consultbook.db.models.document import Document
from consultbook.schemas.appointment import AppointmentCreate, AppointmentUpdate
from consultbook.schemas.document import DocumentCreate
from consultbook.services.availability import AvailabilityService
from consultbook.services.notifications import NotificationKind

logger = get_logger(__name__)

PENDING_EXISTS_MESSAGE = "You already have a pending appointment. Please complete or cancel it first."


def _is_pending_email_conflict(error: IntegrityError) -> bool:
    # Postgres names the partial index; SQLite names the column
    message = str(error.orig)
    return "uq_appointments_pending_email" in message or "appointments.email" in message


class AppointmentService:
    """Creates, confirms, cancels and updates appointments."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        availability: AvailabilityService,
        notifier: Any,
        pricing: Optional[PricingTable] = None,
    ):
        self.db = db
        self.availability = availability
        self.notifier = notifier
        self.pricing = pricing or settings.pricing

    # ---------- Internal helpers ----------

    async def _get_or_404(self, appointment_id: str) -> Appointment:
        appointment = await appointments_crud.get_appointment_by_id(self.db, appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment not found with id: {appointment_id}")
        return appointment

    def _notify(self, kind: NotificationKind, appointment: Appointment, **extra: Any) -> None:
        # Best effort: a failing sink never fails the operation that triggered it
        try:
            self.notifier.notify(kind, appointment, **extra)
        except Exception as e:
            log_error(
                e,
                {"component": "notifications", "kind": kind.value, "appointment_id": appointment.id},
                ErrorSeverity.MEDIUM,
            )

    @staticmethod
    def _validate_schedule(duration: int, tz_name: Optional[str] = None) -> None:
        if duration not in ALLOWED_DURATIONS:
            raise InvalidRequestError(f"Invalid duration: {duration}. Allowed: 30, 60 or 90 minutes")
        if tz_name is not None and not is_valid_timezone(tz_name):
            raise InvalidRequestError(f"Invalid timezone: {tz_name}")

    async def _commit_reservation(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            log_error(e, {"component": "appointments", "stage": "commit"}, ErrorSeverity.LOW)
            if _is_pending_email_conflict(e):
                raise BusinessRuleViolation(PENDING_EXISTS_MESSAGE) from e
            raise BusinessRuleViolation("Selected time is no longer available") from e

    # ---------- Core orchestration ----------

    async def create_appointment(self, details: AppointmentCreate) -> Appointment:
        """
        Booking flow:
        1) reject a second PENDING booking for the same email
        2) serialize on the dates touched and check availability
        3) price from the configured table
        4) persist PENDING and reserve its blocked period in the same transaction
        5) queue the "booking received" notification (best effort)
        """
        logger.info("appointment_create_start", email=details.email, start=details.appointment_date.isoformat())

        if details.appointment_date.tzinfo is None:
            raise InvalidRequestError("Appointment date must include a timezone offset")
        self._validate_schedule(details.duration, details.user_timezone)
        if details.currency not in SUPPORTED_CURRENCIES:
            raise InvalidRequestError(f"Currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}")

        # 1) Duplicate pending booking
        if await appointments_crud.exists_by_email_and_status(self.db, details.email, AppointmentStatus.PENDING):
            raise BusinessRuleViolation(PENDING_EXISTS_MESSAGE)

        # 2) Availability, serialized per date
        start_utc = to_utc(details.appointment_date)
        end_utc = start_utc + timedelta(minutes=details.duration)
        await self.availability.lock_dates(start_utc, end_utc)
        if not await self.availability.is_available(start_utc, details.duration):
            raise BusinessRuleViolation("Selected time is not available")

        # 3) Price
        amount = self.pricing.price_for(details.currency, details.duration)

        # 4) Persist + reserve
        appointment = Appointment(
            first_name=details.first_name,
            last_name=details.last_name,
            email=details.email,
            phone=details.phone,
            country=details.country,
            appointment_date=start_utc,
            user_timezone=details.user_timezone,
            duration=details.duration,
            consultation_type=details.consultation_type,
            client_presentation=details.client_presentation,
            amount=amount,
            currency=details.currency,
            status=AppointmentStatus.PENDING,
        )
        try:
            await appointments_crud.save_appointment(self.db, appointment)
            await self.availability.block_time_for_appointment(
                appointment.id, start_utc, details.duration, commit=False
            )
        except IntegrityError as e:
            await self.db.rollback()
            if _is_pending_email_conflict(e):
                raise BusinessRuleViolation(PENDING_EXISTS_MESSAGE) from e
            raise BusinessRuleViolation("Selected time is no longer available") from e
        await self._commit_reservation()

        logger.info("appointment_created", appointment_id=appointment.id, amount=str(amount),
                    currency=appointment.currency)

        # 5) Notification (non-blocking)
        self._notify(NotificationKind.BOOKING_RECEIVED, appointment)
        return appointment

    async def confirm_payment(self, appointment_id: str, payment_reference: str) -> Appointment:
        logger.info("payment_confirm_start", appointment_id=appointment_id)
        appointment = await self._get_or_404(appointment_id)

        if appointment.status != AppointmentStatus.PENDING:
            raise BusinessRuleViolation("Appointment is not in pending status")
        if appointment.payment_intent_id and appointment.payment_intent_id != payment_reference:
            raise BusinessRuleViolation("Payment reference is already set for this appointment")

        appointment.payment_intent_id = payment_reference
        appointment.status = AppointmentStatus.CONFIRMED
        appointment.touch()
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise BusinessRuleViolation("Payment reference already used by another appointment") from e

        logger.info("payment_confirmed", appointment_id=appointment_id)
        self._notify(NotificationKind.PAYMENT_RECEIPT, appointment)
        return appointment

    async def cancel_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self._get_or_404(appointment_id)

        if appointment.status == AppointmentStatus.COMPLETED:
            raise BusinessRuleViolation("Cannot cancel completed appointment")
        if not can_transition(appointment.status, AppointmentStatus.CANCELLED):
            raise BusinessRuleViolation(f"Cannot cancel appointment in status {appointment.status.value}")

        appointment.status = AppointmentStatus.CANCELLED
        appointment.touch()
        await self.availability.free_up_blocked_time_for_appointment(appointment.id, commit=False)
        await self.db.commit()

        logger.info("appointment_cancelled", appointment_id=appointment_id)
        self._notify(NotificationKind.CANCELLATION, appointment)
        return appointment

    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> Appointment:
        """Admin update; status changes follow the state machine and reschedules re-reserve time."""
        appointment = await self._get_or_404(appointment_id)

        new_start = to_utc(changes.appointment_date) if changes.appointment_date is not None else None
        new_duration = changes.duration
        reschedule = (
            (new_start is not None and new_start != appointment.appointment_date)
            or (new_duration is not None and new_duration != appointment.duration)
        )

        if new_duration is not None:
            self._validate_schedule(new_duration)
        if changes.appointment_date is not None and changes.appointment_date.tzinfo is None:
            raise InvalidRequestError("Appointment date must include a timezone offset")

        target_status = changes.status
        if target_status is not None and target_status != appointment.status:
            if not can_transition(appointment.status, target_status):
                raise BusinessRuleViolation(
                    f"Cannot change status from {appointment.status.value} to {target_status.value}"
                )

        if reschedule:
            if appointment.is_terminal or target_status == AppointmentStatus.CANCELLED:
                raise BusinessRuleViolation("Cannot reschedule an appointment that is no longer active")
            start = new_start or appointment.appointment_date
            duration = new_duration or appointment.duration
            await self.availability.lock_dates(start, start + timedelta(minutes=duration))
            if not await self.availability.is_available(start, duration, ignore_appointment_id=appointment.id):
                raise BusinessRuleViolation("Selected time is not available")

            await self.availability.free_up_blocked_time_for_appointment(appointment.id, commit=False)
            appointment.appointment_date = start
            appointment.duration = duration
            await self.availability.block_time_for_appointment(appointment.id, start, duration, commit=False)
            logger.info("appointment_rescheduled", appointment_id=appointment.id, start=start.isoformat(),
                        duration=duration)

        if changes.admin_notes is not None:
            appointment.admin_notes = changes.admin_notes
        if changes.consultation_type is not None:
            appointment.consultation_type = changes.consultation_type

        cancelled = False
        if target_status is not None and target_status != appointment.status:
            appointment.status = target_status
            if target_status == AppointmentStatus.CANCELLED:
                await self.availability.free_up_blocked_time_for_appointment(appointment.id, commit=False)
                cancelled = True

        appointment.touch()
        await self._commit_reservation()

        logger.info("appointment_updated", appointment_id=appointment.id, status=appointment.status.value)
        if cancelled:
            self._notify(NotificationKind.CANCELLATION, appointment)
        return appointment

    # ---------- Reads ----------

    async def get_by_id(self, appointment_id: str) -> Appointment:
        return await self._get_or_404(appointment_id)

    async def list_upcoming(self) -> Sequence[Appointment]:
        return await appointments_crud.list_appointments(
            self.db,
            status=AppointmentStatus.CONFIRMED,
            start_utc=self.availability.now(),
        )

    async def list_all(self) -> Sequence[Appointment]:
        return await appointments_crud.list_appointments(self.db)

    async def list_by_status(self, status: AppointmentStatus) -> Sequence[Appointment]:
        return await appointments_crud.list_appointments(self.db, status=status)

    async def list_confirmed_between(self, start: datetime, end: datetime) -> Sequence[Appointment]:
        return await appointments_crud.list_appointments(
            self.db, status=AppointmentStatus.CONFIRMED, start_utc=start, end_utc=end
        )

    # ---------- Documents ----------

    async def record_document(self, appointment_id: str, data: DocumentCreate) -> Document:
        appointment = await self._get_or_404(appointment_id)
        doc = await documents_crud.create_document(
            self.db,
            appointment_id=appointment.id,
            file_name=data.file_name,
            content_type=data.content_type,
            storage_url=data.storage_url,
            size_bytes=data.size_bytes,
        )
        logger.info("document_recorded", appointment_id=appointment.id, document_id=doc.id)
        self._notify(NotificationKind.DOCUMENT_UPLOADED, appointment, file_name=doc.file_name)
        return doc

    async def list_documents(self, appointment_id: str) -> List[Document]:
        await self._get_or_404(appointment_id)
        return list(await documents_crud.list_documents_for_appointment(self.db, appointment_id))
