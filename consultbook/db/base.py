# consultbook/db/base.py

"""
This file imports all the ORM models so Alembic can discover them.
Whenever you add a new model, import it here.
"""
from consultbook.db.models.appointment import Appointment
from consultbook.db.models.blocked_period import BlockedPeriod
from consultbook.db.models.document import Document
from consultbook.db.models.time_slot import TimeSlot
from consultbook.db.session import engine, Base

__all__ = ["Appointment", "BlockedPeriod", "Document", "TimeSlot", "Base", "init_db"]


async def init_db():
    """Initialize database by creating all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
