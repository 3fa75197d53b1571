# consultbook/schemas/document.py

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DocumentCreate(BaseModel):
    """Metadata for a file already stored in blob storage."""
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=100)
    storage_url: str = Field(..., min_length=1, max_length=1024)
    size_bytes: int = Field(..., ge=0)


class DocumentOut(DocumentCreate):
    id: str
    appointment_id: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)
