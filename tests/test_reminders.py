"""
Tests for the reminder job and the admin daily summary.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from consultbook.db.models.appointment import Appointment, AppointmentStatus
from consultbook.services.notifications import NotificationKind
from consultbook.services.reminders import (
    run_reminder_loop,
    send_appointment_reminders,
    send_daily_summary,
)


async def _add(db, start, status=AppointmentStatus.CONFIRMED, email=None):
    appointment = Appointment(
        first_name="Karim",
        last_name="Haddad",
        email=email or f"karim{start:%d%H%M}@gmail.com",
        phone="+212600000000",
        country="Morocco",
        appointment_date=start,
        user_timezone="Africa/Casablanca",
        duration=30,
        consultation_type="Follow-up",
        amount=Decimal("500"),
        currency="MAD",
        status=status,
    )
    db.add(appointment)
    await db.commit()
    return appointment


@pytest.mark.integration
class TestReminders:
    @pytest.mark.asyncio
    async def test_only_confirmed_in_window(self, db, notifier, fixed_now):
        due = await _add(db, fixed_now + timedelta(hours=24, minutes=30))
        await _add(db, fixed_now + timedelta(hours=23))
        await _add(db, fixed_now + timedelta(hours=26))
        await _add(db, fixed_now + timedelta(hours=24, minutes=45), status=AppointmentStatus.PENDING)

        sent = await send_appointment_reminders(db, notifier, now=fixed_now)

        assert sent == 1
        assert notifier.sent == [(NotificationKind.REMINDER, due.id, {})]
        assert due.reminder_sent is True
        assert due.reminder_sent_at is not None

    @pytest.mark.asyncio
    async def test_reminder_is_sent_once(self, db, notifier, fixed_now):
        await _add(db, fixed_now + timedelta(hours=24, minutes=10))

        assert await send_appointment_reminders(db, notifier, now=fixed_now) == 1
        assert await send_appointment_reminders(db, notifier, now=fixed_now + timedelta(minutes=5)) == 0
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_failed_notification_leaves_flag_unset(self, db, failing_notifier, fixed_now):
        appointment = await _add(db, fixed_now + timedelta(hours=24, minutes=10))

        assert await send_appointment_reminders(db, failing_notifier, now=fixed_now) == 0
        assert appointment.reminder_sent is False


@pytest.mark.integration
class TestDailySummary:
    @pytest.mark.asyncio
    async def test_summary_lists_todays_confirmed(self, db, notifier, fixed_now):
        await _add(db, fixed_now + timedelta(hours=2))
        await _add(db, fixed_now + timedelta(hours=3), status=AppointmentStatus.CANCELLED)
        await _add(db, fixed_now + timedelta(days=1))

        count = await send_daily_summary(db, notifier, now=fixed_now)

        assert count == 1
        (subject, body, payload), = notifier.admin
        assert subject == "1 consultation(s) today"
        assert "Karim Haddad" in body
        assert payload == {"date": "2025-03-01"}

    @pytest.mark.asyncio
    async def test_no_summary_on_empty_day(self, db, notifier, fixed_now):
        assert await send_daily_summary(db, notifier, now=fixed_now) == 0
        assert notifier.admin == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_loop_runs_one_pass_per_interval(session_factory, notifier, fixed_now):
    async with session_factory() as db:
        await _add(db, fixed_now + timedelta(hours=24, minutes=20))

    with patch("consultbook.services.reminders.asyncio.sleep", new=AsyncMock(side_effect=asyncio.CancelledError)):
        with pytest.raises(asyncio.CancelledError):
            await run_reminder_loop(session_factory, notifier, interval_seconds=60, clock=lambda: fixed_now)

    assert notifier.kinds() == [NotificationKind.REMINDER]
    # nothing confirmed for today, so no summary goes out
    assert notifier.admin == []
