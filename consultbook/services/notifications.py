"""
Fire-and-forget client notifications.

Services hand a notification to the dispatcher and return immediately; a
background worker drains the queue and delivers through the configured
channels (SMTP email, JSON webhook). Delivery failures are logged and never
reach the booking caller.
"""
import asyncio
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from consultbook.core.config import Settings, settings as default_settings
from consultbook.core.errors import ErrorSeverity, log_error
from consultbook.core.logging import get_logger
from consultbook.core.timezones import format_for_email
from consultbook.db.models.appointment import Appointment

logger = get_logger(__name__)

FRENCH_COUNTRIES = {"morocco", "maroc", "france", "belgium", "belgique"}


class NotificationKind(str, Enum):
    BOOKING_RECEIVED = "booking_received"
    PAYMENT_RECEIPT = "payment_receipt"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
    DOCUMENT_UPLOADED = "document_uploaded"
    ADMIN_SUMMARY = "admin_summary"


@dataclass
class Notification:
    kind: NotificationKind
    recipient: Optional[str]
    subject: str
    body: str
    appointment_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _language_for(appointment: Appointment) -> str:
    return "fr" if (appointment.country or "").strip().lower() in FRENCH_COUNTRIES else "en"


def compose_message(kind: NotificationKind, appointment: Appointment, **extra: Any) -> tuple[str, str]:
    """Subject and plain-text body for an appointment notification."""
    when = format_for_email(appointment.appointment_date, appointment.user_timezone, _language_for(appointment))
    name = appointment.first_name
    details = (
        f"Consultation: {appointment.consultation_type}\n"
        f"When: {when}\n"
        f"Duration: {appointment.duration} minutes\n"
        f"Reference: {appointment.id}\n"
    )

    if kind == NotificationKind.BOOKING_RECEIVED:
        subject = "We received your booking request"
        intro = (
            f"Hello {name},\n\nThank you for booking a consultation. Your time is reserved "
            f"while we wait for your payment of {appointment.amount} {appointment.currency}.\n\n"
        )
    elif kind == NotificationKind.PAYMENT_RECEIPT:
        subject = "Payment received - your consultation is confirmed"
        intro = (
            f"Hello {name},\n\nWe received your payment of {appointment.amount} {appointment.currency}. "
            f"Your consultation is confirmed.\n\n"
        )
    elif kind == NotificationKind.REMINDER:
        subject = "Reminder: your consultation is tomorrow"
        intro = f"Hello {name},\n\nThis is a reminder of your upcoming consultation.\n\n"
    elif kind == NotificationKind.CANCELLATION:
        subject = "Your consultation has been cancelled"
        intro = f"Hello {name},\n\nYour consultation has been cancelled.\n\n"
    elif kind == NotificationKind.DOCUMENT_UPLOADED:
        subject = "Document received"
        file_name = extra.get("file_name", "your document")
        intro = f"Hello {name},\n\nWe received {file_name} for your consultation.\n\n"
    else:
        raise ValueError(f"Unsupported appointment notification: {kind}")

    return subject, intro + details


class NotificationDispatcher:
    """Queue-backed notification sink with a background delivery worker."""

    def __init__(self, config: Optional[Settings] = None, max_queue_size: int = 1000):
        self.config = config or default_settings
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def notify(self, kind: NotificationKind, appointment: Appointment, **extra: Any) -> None:
        """Queue a notification about ``appointment``; returns without waiting for delivery."""
        if not self.config.NOTIFICATIONS_ENABLED:
            logger.debug("notification_skipped", kind=kind.value, appointment_id=appointment.id)
            return

        subject, body = compose_message(kind, appointment, **extra)
        notification = Notification(
            kind=kind,
            recipient=appointment.email,
            subject=subject,
            body=body,
            appointment_id=appointment.id,
            payload={"status": appointment.status.value, **extra},
        )
        self._queue.put_nowait(notification)
        logger.info("notification_queued", kind=kind.value, appointment_id=appointment.id)

    def notify_admin(self, subject: str, body: str, **payload: Any) -> None:
        if not self.config.NOTIFICATIONS_ENABLED or not self.config.ADMIN_EMAIL:
            return
        self._queue.put_nowait(
            Notification(
                kind=NotificationKind.ADMIN_SUMMARY,
                recipient=self.config.ADMIN_EMAIL,
                subject=subject,
                body=body,
                payload=payload,
            )
        )

    async def send(self, notification: Notification) -> List[str]:
        """Deliver through every configured channel; returns the channels that succeeded."""
        delivered: List[str] = []
        for channel in self._channels():
            try:
                if channel == "email":
                    await asyncio.to_thread(self._send_email, notification)
                elif channel == "webhook":
                    await self._send_webhook(notification)
                delivered.append(channel)
            except Exception as e:
                log_error(
                    e,
                    {"component": "notifications", "channel": channel,
                     "kind": notification.kind.value, "appointment_id": notification.appointment_id},
                    ErrorSeverity.MEDIUM,
                )

        if not delivered:
            logger.info("notification_not_delivered", kind=notification.kind.value,
                        appointment_id=notification.appointment_id)
        return delivered

    def _channels(self) -> List[str]:
        channels = []
        if self.config.smtp_configured:
            channels.append("email")
        if self.config.NOTIFY_WEBHOOK_URL:
            channels.append("webhook")
        return channels

    def _send_email(self, notification: Notification) -> None:
        if not notification.recipient:
            return
        msg = EmailMessage()
        msg['From'] = self.config.NOTIFY_FROM_EMAIL
        msg['To'] = notification.recipient
        msg['Subject'] = notification.subject
        msg.set_content(notification.body)

        with smtplib.SMTP(self.config.SMTP_HOST, self.config.SMTP_PORT, timeout=30) as server:
            server.starttls()
            server.login(self.config.SMTP_USER, self.config.SMTP_PASSWORD)
            server.send_message(msg)

    async def _send_webhook(self, notification: Notification) -> None:
        payload = {
            "kind": notification.kind.value,
            "appointment_id": notification.appointment_id,
            "recipient": notification.recipient,
            "subject": notification.subject,
            "body": notification.body,
            "payload": notification.payload,
            "created_at": notification.created_at.isoformat(),
        }
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(self.config.NOTIFY_WEBHOOK_URL, json=payload)
            response.raise_for_status()

    async def drain(self) -> int:
        """Deliver everything currently queued; returns how many were processed."""
        processed = 0
        while not self._queue.empty():
            notification = self._queue.get_nowait()
            try:
                await self.send(notification)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    async def run_worker(self):
        """Background worker to process the notification queue."""
        logger.info("notification_worker_started")
        while True:
            notification = await self._queue.get()
            try:
                await self.send(notification)
            except Exception as e:
                log_error(e, {"component": "notification_worker"}, ErrorSeverity.MEDIUM)
            finally:
                self._queue.task_done()

    def start(self) -> asyncio.Task:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run_worker())
        return self._worker

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        # Flush whatever is left so shutdown doesn't lose notifications
        await self.drain()
