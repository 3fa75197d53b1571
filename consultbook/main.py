# consultbook/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv see it
from dotenv import load_dotenv
load_dotenv()

import asyncio
from contextlib import asynccontextmanager

import sqlalchemy as sa
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.config import settings
from consultbook.core.errors import BookingError, ErrorSeverity, log_error
from consultbook.core.logging import LoggingMiddleware, get_logger, setup_logging
from consultbook.db.session import AsyncSessionLocal, get_session
from consultbook.services.notifications import NotificationDispatcher
from consultbook.services.reminders import run_reminder_loop

# Routers
from consultbook.api.routes.appointments import router as appointments_router
from consultbook.api.routes.availability import router as availability_router
from consultbook.api.routes.time_slots import router as time_slots_router

setup_logging(debug=settings.is_development, max_log_length=settings.MAX_LOG_LENGTH, level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application_startup", env=settings.APP_ENV)
    notifier = NotificationDispatcher()
    app.state.notifier = notifier
    notifier.start()

    reminder_task = None
    if settings.REMINDER_SCHEDULER_ENABLED:
        reminder_task = asyncio.create_task(
            run_reminder_loop(AsyncSessionLocal, notifier, interval_seconds=settings.REMINDER_INTERVAL_SECONDS)
        )

    yield

    logger.info("application_shutdown")
    if reminder_task is not None:
        reminder_task.cancel()
        try:
            await reminder_task
        except asyncio.CancelledError:
            pass
    await notifier.stop()


app = FastAPI(
    title="Consultbook",
    description="Consultation booking backend: availability, blocking and appointment lifecycle",
    lifespan=lifespan,
)

app.middleware("http")(
    LoggingMiddleware(
        log_requests=settings.LOG_REQUESTS or settings.is_development,
        log_responses=settings.LOG_RESPONSES or settings.is_development,
        slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
    )
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log_error(exc, {"endpoint": request.url.path, "method": request.method})
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


# -------- Health / readiness (public) --------
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True}


@app.get("/readyz", include_in_schema=False)
async def readyz(db: AsyncSession = Depends(get_session)):
    try:
        await db.execute(sa.text("SELECT 1"))
    except Exception as e:
        log_error(e, {"endpoint": "/readyz"}, ErrorSeverity.HIGH)
        return JSONResponse({"ok": False, "db": "unavailable"}, status_code=503)
    return {"ok": True, "db": "ok"}


# -------- Include routers --------
app.include_router(availability_router)
app.include_router(appointments_router)
app.include_router(time_slots_router)
