# consultbook/db/models/document.py

from __future__ import annotations
import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from consultbook.db.session import Base
from consultbook.db.types import UTCDateTime, utcnow


class Document(Base):
    """Metadata of a file a client uploaded for an appointment; the bytes live in blob storage."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    appointment_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    storage_url: Mapped[str] = mapped_column(sa.String(1024), nullable=False)
    size_bytes: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
