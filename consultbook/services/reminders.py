"""
Periodic reminder job: one email per confirmed appointment starting 24-25 hours
out, plus a daily summary of today's confirmed appointments for the admin.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.errors import ErrorSeverity, log_error
from consultbook.core.logging import get_logger
from consultbook.core.timezones import to_utc
from consultbook.crud.appointment import list_appointments, list_reminder_candidates
from consultbook.db.models.appointment import AppointmentStatus
from consultbook.db.types import utcnow
from consultbook.services.notifications import NotificationKind

logger = get_logger(__name__)

REMINDER_WINDOW_START = timedelta(hours=24)
REMINDER_WINDOW_END = timedelta(hours=25)


async def send_appointment_reminders(db: AsyncSession, notifier: Any, *, now: Optional[datetime] = None) -> int:
    """Queue reminders for eligible appointments; returns how many were sent.

    A failure for one appointment is logged and the batch continues.
    """
    now = to_utc(now or datetime.now(timezone.utc))
    candidates = await list_reminder_candidates(
        db,
        start_utc=now + REMINDER_WINDOW_START,
        end_utc=now + REMINDER_WINDOW_END,
    )
    logger.info("reminder_check", candidates=len(candidates))

    sent = 0
    for appointment in candidates:
        try:
            notifier.notify(NotificationKind.REMINDER, appointment)
        except Exception as e:
            log_error(e, {"component": "reminders", "appointment_id": appointment.id}, ErrorSeverity.MEDIUM)
            continue
        appointment.reminder_sent = True
        appointment.reminder_sent_at = utcnow()
        sent += 1

    if sent:
        await db.commit()
    logger.info("reminders_sent", sent=sent)
    return sent


async def send_daily_summary(db: AsyncSession, notifier: Any, *, now: Optional[datetime] = None) -> int:
    """Summarize today's (UTC) confirmed appointments to the admin; returns the count."""
    now = to_utc(now or datetime.now(timezone.utc))
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    appointments = await list_appointments(
        db, status=AppointmentStatus.CONFIRMED, start_utc=day_start, end_utc=day_end
    )
    logger.info("daily_summary", date=day_start.date().isoformat(), confirmed=len(appointments))
    if not appointments:
        return 0

    lines = [
        f"- {a.appointment_date:%H:%M} UTC, {a.duration} min, {a.full_name} ({a.consultation_type})"
        for a in appointments
    ]
    try:
        notifier.notify_admin(
            f"{len(appointments)} consultation(s) today",
            "Today's confirmed consultations:\n" + "\n".join(lines),
            date=day_start.date().isoformat(),
        )
    except Exception as e:
        log_error(e, {"component": "daily_summary"}, ErrorSeverity.MEDIUM)
    return len(appointments)


async def run_reminder_loop(
    session_factory: async_sessionmaker,
    notifier: Any,
    *,
    interval_seconds: int = 3600,
    summary_hour_utc: int = 9,
    clock: Callable[[], datetime] = utcnow,
):
    """Background task: reminders every ``interval_seconds``, the summary once a day."""
    logger.info("reminder_loop_started", interval_seconds=interval_seconds)
    last_summary_date = None
    while True:
        now = clock()
        try:
            async with session_factory() as db:
                await send_appointment_reminders(db, notifier, now=now)
                if now.hour >= summary_hour_utc and last_summary_date != now.date():
                    await send_daily_summary(db, notifier, now=now)
                    last_summary_date = now.date()
        except Exception as e:
            log_error(e, {"component": "reminder_loop"}, ErrorSeverity.HIGH)
        await asyncio.sleep(interval_seconds)
