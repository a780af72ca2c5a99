from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Optional
import re

class PaymentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    succeeded = "succeeded"
    failed = "failed"
    refunded = "refunded"

class PaymentIntentCreate(BaseModel):
    booking_id: str = Field(..., description="ID de la reserva a pagar")

    @field_validator('booking_id')
    @classmethod
    def validate_booking_id(cls, v: str) -> str:
        """Valida que el booking_id tenga formato ObjectId válido"""
        if not re.match(r'^[0-9a-fA-F]{24}$', v):
            raise ValueError("Invalid booking_id format")
        return v

class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0, le=10000, description="Reembolso parcial en dólares; por defecto el precio completo")

    @field_validator('amount')
    @classmethod
    def round_amount(cls, v: Optional[float]) -> Optional[float]:
        return round(v, 2) if v is not None else v

