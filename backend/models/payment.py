"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Modèle Payment                                                 ║
║                                                                              ║
║  status: unverified → in_review → verified | rejected                        ║
║  Mirrors the linked Conciliation when one exists.                            ║
║  metadata.months = number of billing periods covered                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import date
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator

from .contract import normalize_currency


class PaymentStatus(str, Enum):
    UNVERIFIED = "unverified"
    IN_REVIEW = "in_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


# Channel of payments synthesized by the settlement allocator
SETTLEMENT_CHANNEL = "settlement"


class PaymentCreate(BaseModel):
    client_id: str
    contract_id: Optional[str] = None
    reminder_id: Optional[str] = None
    amount: float = Field(..., ge=0)
    currency: str
    channel: str = Field(..., max_length=50)
    status: PaymentStatus = PaymentStatus.UNVERIFIED
    reference: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[date] = None
    metadata: Dict[str, Any] = {}

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        return normalize_currency(v)


class PaymentUpdate(BaseModel):
    contract_id: Optional[str] = None
    reminder_id: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    channel: Optional[str] = Field(None, max_length=50)
    reference: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[date] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is None:
            return v
        return normalize_currency(v)


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    paid_at: Optional[date] = None
    metadata: Dict[str, Any] = {}
