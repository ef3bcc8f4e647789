"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Modèle Reminder                                                ║
║                                                                              ║
║  LIFECYCLE:                                                                  ║
║  pending → queued → sent → acknowledged | paid                               ║
║  terminal: paid, cancelled, failed                                           ║
║                                                                              ║
║  RÈGLE: status="paid" UNIQUEMENT via services/settlement.py                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ReminderStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Not yet resolved: blocks the scheduler from creating another one
OUTSTANDING_STATUSES = ["pending", "queued", "sent"]

# Picked up by the dispatch poller
DISPATCHABLE_STATUSES = ["pending", "queued"]

# Can still be settled by a payment
SETTLEABLE_STATUSES = ["pending", "queued", "sent", "acknowledged"]

# Set by payment settlement only, never by operators or the poller
ENGINE_ONLY_STATUSES = ["paid", "acknowledged"]

VALID_REMINDER_TRANSITIONS = {
    "pending": ["queued", "sent", "cancelled", "failed", "paid"],
    "queued": ["sent", "cancelled", "failed", "paid"],
    "sent": ["acknowledged", "paid", "failed"],
    "acknowledged": ["paid"],
    "paid": [],  # TERMINAL
    "cancelled": [],  # TERMINAL
    "failed": [],  # TERMINAL
}


class ReminderCreate(BaseModel):
    contract_id: str
    client_id: str
    channel: str = Field("whatsapp", max_length=50)
    scheduled_for: datetime
    status: Optional[ReminderStatus] = None
    payload: Dict[str, Any] = {}


class ReminderUpdate(BaseModel):
    channel: Optional[str] = Field(None, max_length=50)
    scheduled_for: Optional[datetime] = None
    status: Optional[ReminderStatus] = None
    payload: Optional[Dict[str, Any]] = None
    response_payload: Optional[Dict[str, Any]] = None
    attempts: Optional[int] = Field(None, ge=0)


class ReminderAcknowledge(BaseModel):
    """Body of the dispatch poller's acknowledge call"""
    status: ReminderStatus = ReminderStatus.SENT
    response_payload: Dict[str, Any] = {}
    acknowledged_at: Optional[datetime] = None
