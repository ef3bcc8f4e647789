"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Modèle Contract                                                ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - client_id nullable while the contract is "unassigned"                     ║
║  - at most one outstanding reminder per contract (scheduler)                 ║
║  - soft delete cascades to the contract's reminders                          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import date
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    ONE_TIME = "one_time"


VALID_BILLING_CYCLES = [c.value for c in BillingCycle]
RECURRING_CYCLES = ["weekly", "biweekly", "monthly"]


def normalize_currency(value: str) -> str:
    """Currency is persisted as a 3-letter upper-case code"""
    code = (value or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Currency must be a 3-letter code: {value!r}")
    return code


class ContractCreate(BaseModel):
    client_id: Optional[str] = None
    name: str
    amount: float = Field(..., ge=0)
    currency: str = "CRC"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    next_due_date: Optional[date] = None
    grace_period_days: int = Field(0, ge=0, le=31)
    services: List[str] = []
    metadata: Dict[str, Any] = {}
    notes: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        return normalize_currency(v)


class ContractUpdate(BaseModel):
    client_id: Optional[str] = None
    name: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    next_due_date: Optional[date] = None
    grace_period_days: Optional[int] = Field(None, ge=0, le=31)
    services: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is None:
            return v
        return normalize_currency(v)
