"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Modèle Conciliation                                            ║
║                                                                              ║
║  1:1 avec Payment (index unique sur payment_id)                              ║
║  pending → in_review → approved | rejected                                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .payment import PaymentStatus


class ConciliationStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Conciliation.status -> mirrored Payment.status
PAYMENT_STATUS_MIRROR = {
    ConciliationStatus.PENDING: PaymentStatus.IN_REVIEW,
    ConciliationStatus.IN_REVIEW: PaymentStatus.IN_REVIEW,
    ConciliationStatus.APPROVED: PaymentStatus.VERIFIED,
    ConciliationStatus.REJECTED: PaymentStatus.REJECTED,
}

# Transitions that stamp verified_at
REVIEW_OUTCOMES = (ConciliationStatus.APPROVED, ConciliationStatus.REJECTED)


def payment_status_for(status) -> PaymentStatus:
    """Payment status implied by a conciliation status"""
    return PAYMENT_STATUS_MIRROR[ConciliationStatus(status)]


class ConciliationCreate(BaseModel):
    payment_id: str
    status: ConciliationStatus = ConciliationStatus.PENDING
    notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    # Review form extras, merged into the payment metadata
    months: Optional[int] = Field(None, ge=1)
    contract_id: Optional[str] = None
    calculated_amount: Optional[float] = Field(None, ge=0)


class ConciliationUpdate(BaseModel):
    status: Optional[ConciliationStatus] = None
    notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
