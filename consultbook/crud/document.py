# consultbook/crud/document.py

from __future__ import annotations
from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.db.models.document import Document


async def create_document(
    db: AsyncSession,
    *,
    appointment_id: str,
    file_name: str,
    content_type: str,
    storage_url: str,
    size_bytes: int,
) -> Document:
    doc = Document(
        appointment_id=appointment_id,
        file_name=file_name,
        content_type=content_type,
        storage_url=storage_url,
        size_bytes=size_bytes,
    )
    db.add(doc)
    await db.commit()
    await db.refresh(doc)
    return doc


async def list_documents_for_appointment(db: AsyncSession, appointment_id: str) -> Sequence[Document]:
    q = (
        sa.select(Document)
        .where(Document.appointment_id == appointment_id)
        .order_by(Document.uploaded_at.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()
