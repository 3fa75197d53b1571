# consultbook/api/deps.py

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.config import settings
from consultbook.core.errors import ErrorSeverity, log_error
from consultbook.db.session import get_session
from consultbook.services.appointments import AppointmentService
from consultbook.services.availability import AvailabilityService
from consultbook.services.notifications import NotificationDispatcher
from consultbook.services.time_slots import TimeSlotService

__all__ = [
    "get_session",
    "get_clock",
    "get_notifier",
    "get_availability_service",
    "get_appointment_service",
    "get_time_slot_service",
    "require_admin",
]


def get_clock() -> Callable[[], datetime]:
    # Overridden in tests to freeze "now"
    return lambda: datetime.now(timezone.utc)


def get_notifier(request: Request) -> NotificationDispatcher:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = NotificationDispatcher()
        request.app.state.notifier = notifier
    return notifier


def get_availability_service(
    db: AsyncSession = Depends(get_session),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, clock=clock)


def get_appointment_service(
    db: AsyncSession = Depends(get_session),
    availability: AvailabilityService = Depends(get_availability_service),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> AppointmentService:
    return AppointmentService(db, availability=availability, notifier=notifier)


def get_time_slot_service(db: AsyncSession = Depends(get_session)) -> TimeSlotService:
    return TimeSlotService(db)


def require_admin(request: Request, x_api_key: str = Header("", alias="X-API-Key")) -> bool:
    """Admin endpoints need the configured key in ``X-API-Key``."""
    expected = settings.ADMIN_API_KEY or ""
    if not expected or not secrets.compare_digest(x_api_key, expected):
        log_error(Exception("API key validation failed"),
                  {"endpoint": request.url.path, "has_key": bool(x_api_key)},
                  ErrorSeverity.MEDIUM)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
    return True
