"""
Tests for the appointment lifecycle: booking, payment confirmation,
cancellation and admin updates, with their blocked-period side effects.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from consultbook.core.config import PricingTable
from consultbook.core.errors import (
    BusinessRuleViolation,
    ConfigurationError,
    InvalidRequestError,
    NotFoundError,
)
from consultbook.crud import blocked_period as store
from consultbook.db.models.appointment import AppointmentStatus
from consultbook.schemas.appointment import AppointmentCreate, AppointmentUpdate
from consultbook.schemas.availability import BlockPeriodRequest
from consultbook.schemas.document import DocumentCreate
from consultbook.services.appointments import AppointmentService, _is_pending_email_conflict
from consultbook.services.notifications import NotificationKind

UTC = timezone.utc


def _details(payload, **overrides):
    return AppointmentCreate(**{**payload, **overrides})


@pytest.mark.integration
class TestCreateAppointment:
    @pytest.mark.asyncio
    async def test_successful_booking(self, db, appointments, notifier, booking_payload):
        """Booking persists PENDING, prices it, and reserves the interval."""
        appointment = await appointments.create_appointment(_details(booking_payload))

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.amount == Decimal("90")
        assert appointment.currency == "CAD"
        assert appointment.email == "amina.benali@gmail.com"
        assert appointment.phone == "+15145550123"
        assert appointment.appointment_date == datetime(2025, 3, 10, 18, 0, tzinfo=UTC)

        period = await store.find_appointment_derived_period(db, appointment.id)
        assert period is not None
        assert period.start_at == datetime(2025, 3, 10, 18, 0, tzinfo=UTC)
        assert period.end_at == datetime(2025, 3, 10, 19, 0, tzinfo=UTC)
        assert period.reason == "APPOINTMENT"

        assert notifier.kinds() == [NotificationKind.BOOKING_RECEIVED]

    @pytest.mark.asyncio
    async def test_mad_pricing(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(
            _details(booking_payload, currency="mad", duration=90, country="Morocco",
                     user_timezone="Africa/Casablanca")
        )
        assert appointment.currency == "MAD"
        assert appointment.amount == Decimal("1300")

    @pytest.mark.asyncio
    async def test_duplicate_pending_email_fails_before_availability_check(
        self, appointments, availability, booking_payload
    ):
        await appointments.create_appointment(_details(booking_payload))

        with patch.object(availability, "is_available", new=AsyncMock(return_value=True)) as mocked:
            with pytest.raises(BusinessRuleViolation, match="pending appointment"):
                await appointments.create_appointment(
                    _details(booking_payload, appointment_date="2025-03-12T10:00:00-04:00")
                )
            mocked.assert_not_called()

    @pytest.mark.asyncio
    async def test_overlapping_booking_is_rejected(self, appointments, booking_payload):
        await appointments.create_appointment(_details(booking_payload))

        with pytest.raises(BusinessRuleViolation, match="not available"):
            await appointments.create_appointment(
                _details(booking_payload, email="other.client@gmail.com",
                         appointment_date="2025-03-10T14:30:00-04:00", duration=30)
            )

    @pytest.mark.asyncio
    async def test_adjacent_booking_is_accepted(self, appointments, booking_payload):
        await appointments.create_appointment(_details(booking_payload))

        second = await appointments.create_appointment(
            _details(booking_payload, email="other.client@gmail.com",
                     appointment_date="2025-03-10T15:00:00-04:00", duration=30)
        )
        assert second.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_admin_block_makes_time_unavailable(self, availability, appointments, booking_payload):
        await availability.block_period(BlockPeriodRequest(date="2025-03-10", full_day=True, reason="VACATION"))

        with pytest.raises(BusinessRuleViolation):
            await appointments.create_appointment(_details(booking_payload))
        assert await appointments.list_all() == []

    @pytest.mark.asyncio
    async def test_past_start_is_rejected(self, appointments, booking_payload):
        with pytest.raises(BusinessRuleViolation):
            await appointments.create_appointment(
                _details(booking_payload, appointment_date="2025-02-20T14:00:00-05:00")
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"duration": 45},
            {"currency": "EUR"},
            {"user_timezone": "Atlantis/Capital"},
            {"appointment_date": "2025-03-10T14:00:00"},
        ],
    )
    async def test_invalid_input(self, db, appointments, booking_payload, overrides):
        with pytest.raises(InvalidRequestError):
            await appointments.create_appointment(_details(booking_payload, **overrides))
        assert await store.find_all(db) == []

    @pytest.mark.asyncio
    async def test_missing_price_is_a_configuration_error(self, db, availability, notifier, booking_payload):
        service = AppointmentService(
            db, availability=availability, notifier=notifier,
            pricing=PricingTable({"CAD": {30: Decimal("50")}}),
        )
        with pytest.raises(ConfigurationError):
            await service.create_appointment(_details(booking_payload))

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_booking(
        self, db, availability, failing_notifier, booking_payload
    ):
        service = AppointmentService(db, availability=availability, notifier=failing_notifier)
        appointment = await service.create_appointment(_details(booking_payload))

        assert appointment.status == AppointmentStatus.PENDING
        assert await store.find_appointment_derived_period(db, appointment.id) is not None

    @pytest.mark.asyncio
    async def test_pending_email_uniqueness_enforced_by_the_database(self, appointments, booking_payload):
        """Two racing requests both pass the read check; the second fails at write time."""
        await appointments.create_appointment(_details(booking_payload))

        with patch(
            "consultbook.services.appointments.appointments_crud.exists_by_email_and_status",
            new=AsyncMock(return_value=False),
        ):
            with pytest.raises(BusinessRuleViolation, match="pending appointment"):
                await appointments.create_appointment(
                    _details(booking_payload, appointment_date="2025-03-12T10:00:00-04:00")
                )

        pending = await appointments.list_by_status(AppointmentStatus.PENDING)
        assert len(pending) == 1

    @pytest.mark.parametrize(
        "message, pending_email",
        [
            ("UNIQUE constraint failed: appointments.email", True),
            ('duplicate key value violates unique constraint "uq_appointments_pending_email"', True),
            ('duplicate key value violates unique constraint "uq_blocked_periods_appointment_id"', False),
        ],
    )
    def test_integrity_errors_are_told_apart(self, message, pending_email):
        error = IntegrityError("INSERT ...", {}, Exception(message))
        assert _is_pending_email_conflict(error) is pending_email


@pytest.mark.integration
class TestConfirmPayment:
    @pytest.mark.asyncio
    async def test_confirms_pending(self, appointments, notifier, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))

        confirmed = await appointments.confirm_payment(appointment.id, "pi_123")

        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert confirmed.payment_intent_id == "pi_123"
        assert notifier.kinds()[-1] == NotificationKind.PAYMENT_RECEIPT

    @pytest.mark.asyncio
    async def test_only_pending_can_be_confirmed(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        await appointments.confirm_payment(appointment.id, "pi_123")

        with pytest.raises(BusinessRuleViolation, match="not in pending status"):
            await appointments.confirm_payment(appointment.id, "pi_123")

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, appointments):
        with pytest.raises(NotFoundError):
            await appointments.confirm_payment("missing", "pi_123")


@pytest.mark.integration
class TestCancelAppointment:
    @pytest.mark.asyncio
    async def test_cancel_frees_the_interval(self, db, appointments, availability, notifier, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        start = appointment.appointment_date
        assert await availability.is_available(start, 60) is False

        cancelled = await appointments.cancel_appointment(appointment.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert await store.find_appointment_derived_period(db, appointment.id) is None
        assert await availability.is_available(start, 60) is True
        assert notifier.kinds()[-1] == NotificationKind.CANCELLATION

    @pytest.mark.asyncio
    async def test_cancel_leaves_other_blocked_periods_untouched(self, db, appointments, availability, booking_payload):
        (admin_block,) = await availability.block_period(
            BlockPeriodRequest(date="2025-03-10", start_time="09:00", end_time="10:00", reason="MEETING")
        )
        other = await appointments.create_appointment(
            _details(booking_payload, email="youssef.amrani@gmail.com",
                     appointment_date="2025-03-10T16:00:00-04:00")
        )
        other_block = await store.find_appointment_derived_period(db, other.id)
        appointment = await appointments.create_appointment(_details(booking_payload))
        before = {p.id for p in await store.find_all(db)}

        await appointments.cancel_appointment(appointment.id)

        remaining = await store.find_all(db)
        assert {p.id for p in remaining} == {admin_block.id, other_block.id}
        assert len(before) - len(remaining) == 1
        assert await availability.is_available(other.appointment_date, 60) is False

    @pytest.mark.asyncio
    async def test_same_email_can_book_again_after_cancelling(self, appointments, booking_payload):
        first = await appointments.create_appointment(_details(booking_payload))
        await appointments.cancel_appointment(first.id)

        second = await appointments.create_appointment(_details(booking_payload))
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_cannot_cancel_completed(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        await appointments.confirm_payment(appointment.id, "pi_1")
        await appointments.update(appointment.id, AppointmentUpdate(status=AppointmentStatus.COMPLETED))

        with pytest.raises(BusinessRuleViolation, match="Cannot cancel completed appointment"):
            await appointments.cancel_appointment(appointment.id)

    @pytest.mark.asyncio
    async def test_cannot_cancel_twice(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        await appointments.cancel_appointment(appointment.id)

        with pytest.raises(BusinessRuleViolation):
            await appointments.cancel_appointment(appointment.id)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, appointments):
        with pytest.raises(NotFoundError):
            await appointments.cancel_appointment("missing")


@pytest.mark.integration
class TestUpdateAppointment:
    @pytest.mark.asyncio
    async def test_reschedule_into_own_slot(self, db, appointments, booking_payload):
        """Moving by 30 minutes overlaps the old reservation, which must not block itself."""
        appointment = await appointments.create_appointment(_details(booking_payload))
        new_start = datetime(2025, 3, 10, 18, 30, tzinfo=UTC)

        updated = await appointments.update(appointment.id, AppointmentUpdate(appointment_date=new_start))

        assert updated.appointment_date == new_start
        period = await store.find_appointment_derived_period(db, appointment.id)
        assert period.start_at == new_start
        assert period.end_at == new_start + timedelta(minutes=60)

    @pytest.mark.asyncio
    async def test_reschedule_into_blocked_time(self, db, appointments, availability, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        await availability.block_period(BlockPeriodRequest(date="2025-03-11", full_day=True, reason="TRAINING"))

        with pytest.raises(BusinessRuleViolation):
            await appointments.update(
                appointment.id,
                AppointmentUpdate(appointment_date=datetime(2025, 3, 11, 15, 0, tzinfo=UTC)),
            )
        period = await store.find_appointment_derived_period(db, appointment.id)
        assert period.start_at == datetime(2025, 3, 10, 18, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))

        with pytest.raises(BusinessRuleViolation):
            await appointments.update(appointment.id, AppointmentUpdate(status=AppointmentStatus.COMPLETED))

    @pytest.mark.asyncio
    async def test_invalid_duration(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))

        with pytest.raises(InvalidRequestError):
            await appointments.update(appointment.id, AppointmentUpdate(duration=20))

    @pytest.mark.asyncio
    async def test_cancel_via_update_frees_block(self, db, appointments, notifier, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))

        updated = await appointments.update(
            appointment.id,
            AppointmentUpdate(status=AppointmentStatus.CANCELLED, admin_notes="client asked by phone"),
        )

        assert updated.status == AppointmentStatus.CANCELLED
        assert updated.admin_notes == "client asked by phone"
        assert await store.find_appointment_derived_period(db, appointment.id) is None
        assert notifier.kinds()[-1] == NotificationKind.CANCELLATION


@pytest.mark.integration
class TestReadsAndDocuments:
    @pytest.mark.asyncio
    async def test_list_upcoming_returns_confirmed_only(self, appointments, booking_payload):
        pending = await appointments.create_appointment(_details(booking_payload))
        other = await appointments.create_appointment(
            _details(booking_payload, email="second@gmail.com", appointment_date="2025-03-11T10:00:00-04:00")
        )
        await appointments.confirm_payment(other.id, "pi_2")

        upcoming = await appointments.list_upcoming()

        assert [a.id for a in upcoming] == [other.id]
        assert pending.id in [a.id for a in await appointments.list_all()]

    @pytest.mark.asyncio
    async def test_list_confirmed_between(self, appointments, booking_payload):
        first = await appointments.create_appointment(_details(booking_payload))
        await appointments.confirm_payment(first.id, "pi_1")
        second = await appointments.create_appointment(
            _details(booking_payload, email="second@gmail.com", appointment_date="2025-03-20T10:00:00-04:00")
        )
        await appointments.confirm_payment(second.id, "pi_2")

        window = await appointments.list_confirmed_between(
            datetime(2025, 3, 10, tzinfo=UTC), datetime(2025, 3, 11, tzinfo=UTC)
        )
        assert [a.id for a in window] == [first.id]

    @pytest.mark.asyncio
    async def test_get_by_id(self, appointments, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))
        assert (await appointments.get_by_id(appointment.id)).id == appointment.id
        with pytest.raises(NotFoundError):
            await appointments.get_by_id("missing")

    @pytest.mark.asyncio
    async def test_record_and_list_documents(self, appointments, notifier, booking_payload):
        appointment = await appointments.create_appointment(_details(booking_payload))

        doc = await appointments.record_document(
            appointment.id,
            DocumentCreate(file_name="passport.pdf", content_type="application/pdf",
                           storage_url="s3://docs/passport.pdf", size_bytes=2048),
        )

        assert doc.appointment_id == appointment.id
        assert [d.id for d in await appointments.list_documents(appointment.id)] == [doc.id]
        kind, _, extra = notifier.sent[-1]
        assert kind == NotificationKind.DOCUMENT_UPLOADED
        assert extra == {"file_name": "passport.pdf"}

    @pytest.mark.asyncio
    async def test_documents_for_unknown_appointment(self, appointments):
        with pytest.raises(NotFoundError):
            await appointments.list_documents("missing")
