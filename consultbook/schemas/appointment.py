# consultbook/schemas/appointment.py

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from consultbook.db.models.appointment import AppointmentStatus


def _clean_text(v: str) -> str:
    # trim + collapse internal extra spaces
    v = " ".join(v.strip().split())
    if not v:
        raise ValueError("must not be empty")
    return v


class AppointmentCreate(BaseModel):
    first_name: str = Field(..., max_length=100, examples=["Amina"])
    last_name: str = Field(..., max_length=100, examples=["Benali"])
    email: EmailStr
    phone: str = Field(..., min_length=7, max_length=32, examples=["+1-514-555-0123"])
    country: str = Field(..., max_length=100, examples=["Canada"])
    appointment_date: datetime = Field(..., description="ISO8601 instant with offset, e.g. 2025-03-10T14:00:00-05:00")
    duration: int = Field(..., description="Minutes: 30, 60 or 90")
    consultation_type: str = Field(..., max_length=100)
    client_presentation: Optional[str] = Field(None, max_length=1000)
    currency: str = Field(..., examples=["CAD"])
    user_timezone: str = Field(..., examples=["America/Toronto"])

    @field_validator("first_name", "last_name", "country", "consultation_type")
    @classmethod
    def _required_text(cls, v: str) -> str:
        return _clean_text(v)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, v: str) -> str:
        # keep leading '+', remove spaces/dashes/parens; enforce 7–15 digits
        v = v.strip()
        for ch in " -().":
            v = v.replace(ch, "")
        digits = v[1:] if v.startswith("+") else v
        if not digits.isdigit() or not (7 <= len(digits) <= 15):
            raise ValueError("phone must be 7–15 digits, optionally prefixed with +")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("user_timezone")
    @classmethod
    def _strip_tz(cls, v: str) -> str:
        return v.strip()


class AppointmentUpdate(BaseModel):
    appointment_date: Optional[datetime] = None
    duration: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    admin_notes: Optional[str] = Field(None, max_length=1000)
    consultation_type: Optional[str] = Field(None, max_length=100)


class PaymentConfirmation(BaseModel):
    payment_reference: str = Field(..., min_length=1, max_length=255)


class AppointmentOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    country: str
    appointment_date: datetime
    user_timezone: str
    duration: int
    consultation_type: str
    client_presentation: Optional[str] = None
    amount: Decimal
    currency: str
    status: AppointmentStatus
    payment_intent_id: Optional[str] = None
    admin_notes: Optional[str] = None
    reminder_sent: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
