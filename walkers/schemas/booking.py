from pydantic import BaseModel, Field, field_validator
from enum import Enum
from datetime import date as Date, datetime, timezone
from typing import Optional
import re

from ..pricing import ServiceName

TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

class BookingStatus(str, Enum):
    pending   = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"

# Campos que el cliente puede tocar; status y price son solo de admin
DESCRIPTIVE_FIELDS = (
    "service", "date", "time", "duration",
    "dog_name", "dog_breed", "dog_age",
    "notes", "special_instructions",
)


def _validate_time(v: Optional[str]) -> Optional[str]:
    if v is not None and not TIME_RE.match(v):
        raise ValueError("Please provide a valid time in HH:MM format")
    return v

def _validate_not_past(v: Optional[Date]) -> Optional[Date]:
    if v is not None and v < datetime.now(timezone.utc).date():
        raise ValueError("Booking date cannot be in the past")
    return v


class BookingCreate(BaseModel):
    """Precio, estado y campos de pago nunca vienen del cliente: se ignoran."""
    service: ServiceName
    dog_name: str = Field(..., min_length=1, max_length=80)
    dog_breed: Optional[str] = Field(None, max_length=80)
    dog_age: Optional[int] = Field(None, ge=0, le=30)
    date: Date
    time: str
    duration: int = Field(..., ge=15, le=480, description="Duración en minutos")
    notes: Optional[str] = Field(None, max_length=500)
    special_instructions: Optional[str] = Field(None, max_length=500)

    @field_validator("dog_name", "dog_breed", "notes", "special_instructions")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    @field_validator("dog_name")
    @classmethod
    def dog_name_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Please provide dog name")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_time(v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Date) -> Date:
        return _validate_not_past(v)


class BookingUpdate(BaseModel):
    service: Optional[ServiceName] = None
    dog_name: Optional[str] = Field(None, min_length=1, max_length=80)
    dog_breed: Optional[str] = Field(None, max_length=80)
    dog_age: Optional[int] = Field(None, ge=0, le=30)
    date: Optional[Date] = None
    time: Optional[str] = None
    duration: Optional[int] = Field(None, ge=15, le=480)
    notes: Optional[str] = Field(None, max_length=500)
    special_instructions: Optional[str] = Field(None, max_length=500)
    # solo admin; para el resto se descartan en el servicio
    status: Optional[BookingStatus] = None
    price: Optional[float] = Field(None, ge=0)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_time(v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Optional[Date]) -> Optional[Date]:
        return _validate_not_past(v)
